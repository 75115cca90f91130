from setuptools import setup, find_packages

setup(
    name="beatthecomputer",
    version="0.1.0",
    packages=find_packages(),
    install_requires=[
        "rich>=13.0.0",
        "numpy>=1.24",
        "matplotlib>=3.7",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        'console_scripts': [
            'mcts-generate=beatthecomputer.ai.mcts.example_generator:main',
            'mcts-evaluate-examples=beatthecomputer.ai.mcts.evaluate_examples:main',
            'mcts-benchmark=beatthecomputer.ai.benchmark:main',
        ],
    },
)
