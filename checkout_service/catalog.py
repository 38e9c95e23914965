"""
catalog.py — Catalog Reference Clients

Read-only lookup of medicines by id. The checkout workflow only consumes it
to reject unknown or unavailable medicines; it never writes to the catalog
and never reprices a cart.

Implementations:
    - SqlCatalog: reads the local `medicines` table.
    - CatalogClient: calls a remote catalog service over REST (httpx).
"""

import os
from decimal import Decimal
from typing import Dict, Iterable

import httpx
from pydantic import BaseModel
from sqlalchemy import select

from .db import Medicine, unit_of_work
from .errors import StoreUnavailable
from .logging_config import get_logger
from .models import from_cents

CATALOG_SERVICE_URL = os.environ.get("CATALOG_SERVICE_URL")

log = get_logger(__name__)


class MedicineInfo(BaseModel):
    id: int
    name: str
    price: Decimal
    in_stock: bool = True


class SqlCatalog:
    """Catalog lookup against the medicines table of the local store."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def lookup(self, medicine_ids: Iterable[int]) -> Dict[int, MedicineInfo]:
        ids = set(medicine_ids)
        with unit_of_work(self.session_factory) as session:
            rows = session.scalars(select(Medicine).where(Medicine.id.in_(ids))).all()
            return {
                row.id: MedicineInfo(id=row.id, name=row.name, price=from_cents(row.price_cents), in_stock=row.in_stock)
                for row in rows
            }


# --- Catalog Client (REST) ---
class CatalogClient:
    """
    Client for a remote Catalog Service (REST API).
    """
    def __init__(self, base_url: str = CATALOG_SERVICE_URL, client: httpx.Client = None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            base_url (str): Root URL of the catalog service.
            client (httpx.Client): Optional preconfigured client (e.g. with a mock transport).
        """
        timeout_config = httpx.Timeout(3.0, read=5.0)
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout_config)

    def close(self):
        self.client.close()

    def lookup(self, medicine_ids: Iterable[int]) -> Dict[int, MedicineInfo]:
        """
        Fetches the given medicines from the catalog service.

        Unknown ids are simply absent from the result.

        Returns:
            Dict[int, MedicineInfo]: Medicines keyed by id.

        Raises:
            StoreUnavailable: If the catalog times out, is unreachable, or answers with an error status
                or a malformed body.
        """
        ids = ",".join(str(i) for i in sorted(set(medicine_ids)))
        try:
            response = self.client.get("/v1/medicines", params={"ids": ids})
            response.raise_for_status()
        except httpx.TimeoutException:
            log.error(f"Catalog service timeout while looking up medicines {ids}.")
            raise StoreUnavailable("The catalog service did not respond in time.")
        except httpx.HTTPStatusError as e:
            log.error(f"HTTP error from catalog service: {e}")
            raise StoreUnavailable("The catalog service returned an error.")
        except httpx.TransportError as e:
            log.error(f"Catalog service not reachable: {e}")
            raise StoreUnavailable("The catalog service is not reachable.")

        try:
            return {entry["id"]: MedicineInfo(**entry) for entry in response.json()["medicines"]}
        except (ValueError, KeyError, TypeError) as e:
            log.error(f"Malformed catalog response for medicines {ids}: {e}")
            raise StoreUnavailable("The catalog service returned a malformed response.")
