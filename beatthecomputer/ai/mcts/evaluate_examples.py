"""
Console script for evaluating a generated example file.

Reads an example file and calculates summary statistics of its labels,
optionally saving a label histogram.
"""
import argparse
from pathlib import Path
from typing import Any, Dict, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from beatthecomputer.ai.mcts.example_store import ExampleStore, read_examples


def calculate_statistics(examples: ExampleStore) -> Dict[str, Any]:
    """
    Calculate summary statistics of a store's labels.

    Args:
        examples: Store to summarize

    Returns:
        Dictionary with calculated statistics
    """
    labels = np.fromiter((label for _, label in examples.items()), dtype=float, count=len(examples))
    lengths = sorted({len(features) for features in examples})

    if labels.size == 0:
        return {"num_examples": 0, "feature_lengths": lengths}

    return {
        "num_examples": int(labels.size),
        "feature_lengths": lengths,
        "label_mean": float(labels.mean()),
        "label_std": float(labels.std()),
        "label_min": float(labels.min()),
        "label_max": float(labels.max()),
        "label_median": float(np.median(labels)),
    }


def print_statistics(results: Dict[str, Any], title: str = "Example Statistics", example_file: Optional[str] = None):
    """Print summary statistics in a formatted way."""
    print()
    print(f"=== {title} ===")
    if example_file:
        print(f"Example file: {example_file}")
    print(f"Examples: {results['num_examples']}")
    if results['num_examples'] == 0:
        return
    print(f"Feature lengths: {', '.join(str(n) for n in results['feature_lengths'])}")
    print()
    print("Labels:")
    print(f"  Mean: {results['label_mean']:.4f}")
    print(f"  Std: {results['label_std']:.4f}")
    print(f"  Median: {results['label_median']:.4f}")
    print(f"  Min: {results['label_min']:.4f}")
    print(f"  Max: {results['label_max']:.4f}")


def create_label_histogram(examples: ExampleStore, output_file: Path, bins: int = 20) -> Optional[Path]:
    """
    Save a frequency distribution of the labels as an image.

    Returns:
        Path of the saved image, or None if the store is empty
    """
    labels = [label for _, label in examples.items()]
    if not labels:
        print("Warning: No data to plot")
        return None

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.hist(labels, bins=np.linspace(0.0, 1.0, bins + 1), color='steelblue', alpha=0.7,
            edgecolor='black', linewidth=0.5)
    ax.set_xlabel('Label', fontsize=12)
    ax.set_ylabel('Frequency', fontsize=12)
    ax.set_title('Label Distribution', fontsize=14, fontweight='bold')
    ax.grid(axis='y', alpha=0.3, linestyle='--')

    avg_label = np.mean(labels)
    ax.axvline(x=avg_label, color='green', linestyle='--', linewidth=2,
               alpha=0.7, label=f'Average: {avg_label:.3f}')
    ax.legend()

    fig.tight_layout()
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_file)
    plt.close(fig)
    return output_file


def evaluate_examples(example_file: Path, plot_file: Optional[Path] = None) -> Dict[str, Any]:
    """
    Evaluate one example file.

    Args:
        example_file: File to read (malformed lines raise ExampleFormatError)
        plot_file: Where to save the label histogram (None = no plot)

    Returns:
        Dictionary with evaluation statistics
    """
    example_file = Path(example_file)
    if not example_file.exists():
        raise FileNotFoundError(f"Example file does not exist: {example_file}")

    examples = read_examples(example_file)
    results = calculate_statistics(examples)
    results["example_file"] = str(example_file)

    if plot_file is not None:
        saved = create_label_histogram(examples, plot_file)
        results["plot_file"] = str(saved) if saved else None

    return results


def main():
    """Console script entry point."""
    parser = argparse.ArgumentParser(
        description="Evaluate a generated example file and print summary statistics."
    )
    parser.add_argument(
        "example_file",
        type=str,
        help="Example file to evaluate"
    )
    parser.add_argument(
        "--plot",
        type=str,
        default=None,
        help="Save a label histogram to this image file"
    )

    args = parser.parse_args()

    results = evaluate_examples(
        Path(args.example_file),
        plot_file=Path(args.plot) if args.plot else None,
    )
    print_statistics(results, title="Example Evaluation", example_file=results["example_file"])
    if results.get("plot_file"):
        print(f"\nHistogram saved to {results['plot_file']}")


if __name__ == "__main__":
    main()
