from returndesk.models.return_request import ReturnRequest, new_return_id
from returndesk.models.carrier_shipment import CarrierShipment, new_shipment_id

__all__ = [
    "ReturnRequest",
    "new_return_id",
    "CarrierShipment",
    "new_shipment_id",
]
