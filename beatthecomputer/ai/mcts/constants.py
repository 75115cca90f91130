MCTS_EPSILON = 1e-5  # Floors visit counts in UCT denominators
MCTS_EXPLORATION_CONSTANT = 1.414  # UCT exploration constant (sqrt(2))
MCTS_TIME_LIMIT_MS = 1000  # Search time per evaluation
MCTS_ROLLOUTS_PER_NODE = 1
MCTS_ROLLOUT_WORKERS = 1  # Rollout fan-out width (1 = run rollouts inline)

EXAMPLE_FILE_EXTENSION = ".example"
EXAMPLE_FILE_STEM = "examples"
BACKUP_SUFFIX = "_backup"
CHECKPOINT_INTERVAL_MS = 120000  # Each worker checkpoints roughly this often
MAX_DUPLICATE_STREAK = 10000  # Consecutive already-known candidates before a worker gives up

GENERATE_NUM_EXAMPLES = 1000
GENERATE_TIME_LIMIT_MS = 100
