"""
mock_catalog_service.py — Mock Implementation of the Catalog Service (REST API)

This module provides a simulated medicine catalog for running the checkout
service against a remote Catalog Reference (CATALOG_SERVICE_URL).

Simulation Scenarios:
    • Known medicine → returned with name, price and availability
    • Id in the 9000–9999 range → returned, but out of stock
    • Unknown id → omitted from the response

Endpoints:
    GET /v1/medicines?ids=1,2,3 — Looks up medicines by id.

Port:
    Default: 8002 (HTTP)
"""

from decimal import Decimal

from fastapi import FastAPI, HTTPException, Query
import logging

app = FastAPI(title="Mock Catalog Service")
logging.basicConfig(level=logging.INFO)

OUT_OF_STOCK_RANGE = range(9000, 10000)

MEDICINES = {
    1: {"name": "Paracetamol 500mg", "price": Decimal("4.50")},
    2: {"name": "Ibuprofen 400mg", "price": Decimal("6.20")},
    3: {"name": "Amoxicillin 250mg", "price": Decimal("12.00")},
    4: {"name": "Cetirizine 10mg", "price": Decimal("3.75")},
    9001: {"name": "Insulin Glargine", "price": Decimal("48.00")},
}


def parse_ids(raw: str) -> list:
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(status_code=400, detail={"errorCode": "invalid_ids", "message": "ids must be integers."})


@app.get("/v1/medicines")
def get_medicines(ids: str = Query(..., description="Comma separated medicine ids")):
    """
    Looks up medicines by id.

    Args:
        ids (str): Comma separated list of medicine ids.

    Returns:
        dict: {"medicines": [...]} with one entry per known id, each holding
            id, name, price and in_stock.

    Raises:
        HTTPException(400): If an id is not an integer.
    """
    requested = parse_ids(ids)
    logging.info(f"[CS] Catalog lookup for ids {requested}")

    found = []
    for medicine_id in requested:
        entry = MEDICINES.get(medicine_id)
        if entry is None:
            logging.warning(f"[CS] Medicine {medicine_id} unknown.")
            continue
        in_stock = medicine_id not in OUT_OF_STOCK_RANGE
        if not in_stock:
            logging.info(f"[CS] Medicine {medicine_id} is out of stock.")
        found.append({"id": medicine_id, "name": entry["name"], "price": str(entry["price"]), "in_stock": in_stock})

    return {"medicines": found}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8002)
