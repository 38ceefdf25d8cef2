"""Real-world usage example: watch live flow readings and flag leaks."""

import asyncio
import os

from pywaterdash import AdminGuard, FlowMonitor, TelemetrySubscriptionManager, WaterDashClient
from pywaterdash.config import WaterDashConfig
from pywaterdash.dashboard import ReadingsBoard
from pywaterdash.log import setup_logging
from pywaterdash.valve import ValveCommandEmitter


def show_state(state):
    """Print one flow update."""
    sample = state.sample
    print(f"\n🚰 Flow @ {sample.time_label}")
    print(f"Incoming: {sample.inlet:.1f} L/min")
    print(f"Outgoing: {sample.outlet:.1f} L/min")
    print(f"Difference: {sample.difference:.1f} L/min")
    print(f"Valve: {state.valve_status.value}")
    if state.leak_detected:
        print("🚨 LEAK DETECTED!")


async def main():
    """Run the live readings page against a real project."""
    setup_logging()
    config = WaterDashConfig.from_env()

    username = os.getenv("WATERDASH_USERNAME")
    password = os.getenv("WATERDASH_PASSWORD")
    if not all([username, password]):
        raise ValueError(
            "Missing admin credentials in environment variables. "
            "Please ensure WATERDASH_USERNAME and WATERDASH_PASSWORD are set."
        )

    print("\n🌊 Water Dashboard Live Monitoring")
    print("==================================")

    async with WaterDashClient.from_config(config) as client:
        await AdminGuard(client, email_domain=config.email_domain).login(username, password)

        monitor = FlowMonitor(TelemetrySubscriptionManager(client))
        monitor.add_listener(show_state)

        if not client.influxdb_enabled:
            print("\n⚠️  Warning: InfluxDB is not configured. Data will only be displayed.")
        else:
            client.record_flow(monitor)
            print("\n✅ InfluxDB is configured. Samples will be stored.")

        with ReadingsBoard(monitor, ValveCommandEmitter(client)) as board:
            try:
                while True:
                    await asyncio.sleep(30)
                    print(f"\n{board.banner} ({len(board.chart_points())} points on chart)")
            except asyncio.CancelledError:
                print("\nStopped monitoring")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nProgram terminated by user")
