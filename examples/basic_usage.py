"""Example usage of the pywaterdash library: sign in and triage service requests."""

import asyncio
import os

from pywaterdash import AdminGuard, WaterDashClient
from pywaterdash.config import WaterDashConfig
from pywaterdash.dashboard import RequestsBoard, load_overview
from pywaterdash.geo import format_coordinates, maps_url
from pywaterdash.log import setup_logging
from pywaterdash.service_requests import ServiceRequestManager, available_actions, format_timestamp


async def main():
    """Sign in as an admin, list the service requests and frame the first pending one."""
    setup_logging()
    config = WaterDashConfig.from_env()

    username = os.getenv("WATERDASH_USERNAME")
    password = os.getenv("WATERDASH_PASSWORD")
    if not all([username, password]):
        raise ValueError("Missing WATERDASH_USERNAME or WATERDASH_PASSWORD in environment variables")

    async with WaterDashClient.from_config(config) as client:
        guard = AdminGuard(client, email_domain=config.email_domain)
        profile = await guard.login(username, password)

        manager = ServiceRequestManager(client)
        overview = await load_overview(manager, profile)
        print(f"\nWelcome, {overview.user_name}")
        print(f"Pending requests: {overview.pending_requests}")

        board = RequestsBoard(manager)
        requests = await board.refresh()
        print(f"\nFound {len(requests)} service requests:")

        for request in requests:
            print(f"\nRequest: {request.id}")
            print(f"From: {request.user_name} <{request.user_email}>")
            print(f"Job: {request.job_description}")
            print(f"Status: {request.status.label}")
            print(f"Created: {format_timestamp(request.created_at)}")
            print(f"Location: {format_coordinates(request.location)}")
            print(f"Map: {maps_url(request.location)}")
            print(f"Actions: {', '.join(s.label for s in available_actions(request.status))}")

        pending = [r for r in requests if r.status.value == "pending"]
        if pending:
            route = board.route(pending[0].id, tanker_position=(12.9716, 77.5946))
            print(f"\nTanker to {pending[0].id}: {route.distance_km} km (zoom {route.zoom})")


if __name__ == "__main__":
    asyncio.run(main())
