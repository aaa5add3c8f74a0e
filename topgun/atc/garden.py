# File: topgun/atc/garden.py

import logging

import requests

logger = logging.getLogger(__name__)


class GardenClient:
    """Talks to a worker's container runtime directly at its garden address."""

    def __init__(self, address: str, timeout: float = 30.0):
        self.address = address
        self.timeout = timeout

    def destroy(self, handle: str):
        response = requests.delete(
            f"http://{self.address}/containers/{handle}", timeout=self.timeout
        )
        response.raise_for_status()
        logger.info(f"Destroyed container {handle} on {self.address}")
