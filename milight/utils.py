"""
Utility functions for the Milight library
"""
import asyncio
import math
import signal
import sys
from typing import Callable, Any


def run_with_keyboard_interrupt(main_func: Callable[[], Any]) -> None:
    """
    Run an async main function with graceful KeyboardInterrupt handling.

    Args:
        main_func: The async main function to run
    """
    try:
        asyncio.run(main_func())
    except KeyboardInterrupt:
        print("\n🛑 Interrupted by user (Ctrl+C)")
        print("Shutting down gracefully...")
        sys.exit(0)
    except Exception as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


def setup_signal_handlers() -> None:
    """
    Set up signal handlers for SIGINT (Ctrl+C) and SIGTERM so that a
    long-running bridge process exits cleanly.
    """
    def signal_handler(signum, frame):
        print(f"\n🛑 Received signal {signum}, shutting down gracefully...")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 always rounding up (towards +inf)"""
    return math.floor(value + 0.5)


def map_range(input_start: float, input_end: float, output_start: float, output_end: float, value: float) -> float:
    """Linearly map value from one range onto another"""
    return output_start + ((output_end - output_start) / (input_end - input_start)) * (value - input_start)
