import math


def value_to_cp(value):
    """Map an expected score in [0, 1] to a centipawn-like number for UCI output."""
    value = min(max(value, 0.001), 0.999)
    return int(round(400 * math.log10(value / (1 - value))))


def format_info(result):
    best = result.moves[0] if result.moves else None
    elapsed = result.elapsed_ms
    nps = int(result.simulations * 1000 / elapsed) if elapsed > 0 else 0
    score_str = f"cp {value_to_cp(best.value)}" if best else "cp 0"
    pv_str = result.best_move.uci() if result.best_move else "-"
    return f"info nodes {result.simulations} nps {nps} time {int(elapsed)} score {score_str} pv {pv_str}"


def print_info(result):
    print(format_info(result))
