"""
Source des expéditions sortantes (fulfillment).

Le noyau ne connaît que FulfillmentSource ; deux implémentations :
- LocalShipmentSource : tables outbound_shipments / outbound_shipment_lines
- HttpFulfillmentSource : API externe (requests, timeout explicite),
  repli sur les tables locales si l'API ne renvoie aucune ligne.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import OutboundShipment
from backend.services.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShipmentLine:
    seller_sku: str
    quantity: int


@dataclass
class ShipmentData:
    shipment_ref: str
    inbound_plan_id: str | None = None
    lines: list[ShipmentLine] = field(default_factory=list)


class FulfillmentSource(Protocol):
    def get_shipment(self, shipment_ref: str, inbound_plan_id: str | None = None) -> ShipmentData | None:
        ...

    def list_plan_shipments(self, inbound_plan_id: str) -> list[str]:
        ...


class LocalShipmentSource:
    def __init__(self, db: Session):
        self.db = db

    def get_shipment(self, shipment_ref: str, inbound_plan_id: str | None = None) -> ShipmentData | None:
        shipment = (
            self.db.execute(select(OutboundShipment).where(OutboundShipment.shipment_ref == shipment_ref))
            .scalars()
            .first()
        )
        if not shipment:
            return None
        return ShipmentData(
            shipment_ref=shipment.shipment_ref,
            inbound_plan_id=shipment.inbound_plan_id or inbound_plan_id,
            lines=[ShipmentLine(seller_sku=ln.seller_sku, quantity=int(ln.quantity or 0)) for ln in shipment.lines],
        )

    def list_plan_shipments(self, inbound_plan_id: str) -> list[str]:
        return list(
            self.db.execute(
                select(OutboundShipment.shipment_ref)
                .where(OutboundShipment.inbound_plan_id == inbound_plan_id)
                .order_by(OutboundShipment.shipment_ref)
            )
            .scalars()
            .all()
        )


class HttpFulfillmentSource:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        fallback: FulfillmentSource | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.fallback = fallback
        self.http = session or requests.Session()
        if token:
            self.http.headers["Authorization"] = f"Bearer {token}"

    def _get(self, path: str, params: dict | None = None) -> dict | None:
        url = f"{self.base_url}{path}"
        try:
            resp = self.http.get(url, params=params, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.warning("Fulfillment API unreachable (%s): %s", url, e)
            raise UpstreamUnavailable(f"Fulfillment API unreachable: {e.__class__.__name__}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code >= 500:
            logger.warning("Fulfillment API error %s on %s", resp.status_code, url)
            raise UpstreamUnavailable(f"Fulfillment API returned {resp.status_code}")
        try:
            resp.raise_for_status()
            return resp.json()
        except (requests.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(f"Fulfillment API bad response: {e}") from e

    def get_shipment(self, shipment_ref: str, inbound_plan_id: str | None = None) -> ShipmentData | None:
        params = {"inboundPlanId": inbound_plan_id} if inbound_plan_id else None
        payload = self._get(f"/shipments/{shipment_ref}", params=params)

        data = None
        if payload:
            data = ShipmentData(
                shipment_ref=payload.get("shipmentConfirmationId") or shipment_ref,
                inbound_plan_id=payload.get("inboundPlanId") or inbound_plan_id,
                lines=[
                    ShipmentLine(seller_sku=str(it.get("msku")), quantity=int(it.get("quantity") or 0))
                    for it in payload.get("items") or []
                    if it.get("msku")
                ],
            )

        if (data is None or not data.lines) and self.fallback is not None:
            local = self.fallback.get_shipment(shipment_ref, inbound_plan_id)
            if local and local.lines:
                logger.info("Shipment %s: using local items", shipment_ref)
                if data and data.inbound_plan_id and not local.inbound_plan_id:
                    local.inbound_plan_id = data.inbound_plan_id
                return local

        return data

    def list_plan_shipments(self, inbound_plan_id: str) -> list[str]:
        payload = self._get(f"/inbound-plans/{inbound_plan_id}/shipments")
        if payload is None:
            return self.fallback.list_plan_shipments(inbound_plan_id) if self.fallback else []
        refs = []
        for s in payload.get("shipments") or []:
            ref = s.get("shipmentConfirmationId") or s.get("shipmentId")
            if ref:
                refs.append(str(ref))
        return refs
