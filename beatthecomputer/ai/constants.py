BENCHMARK_NUM_GAMES = 100
BENCHMARK_TIME_LIMIT_MS = 50  # MCTS time per move in benchmark games
BENCHMARK_CONFIDENCE_Z = 1.96  # 95% interval
BENCHMARK_BEHAVIORS = ("mcts", "random")
