import time
from milight import discover_bridges, run_with_keyboard_interrupt


async def main():
    timer_start = time.time()

    for bridge_type in ("legacy", "v6"):
        print(f"{bridge_type} bridges")
        bridges = await discover_bridges(bridge_type, timeout=3.0)
        for bridge in bridges:
            print(f"  • {bridge.mac} @ {bridge.ip}  {bridge.name}")

    timer_end = time.time()
    print(f"Time taken: {timer_end - timer_start} seconds")

if __name__ == "__main__":
    run_with_keyboard_interrupt(main)
