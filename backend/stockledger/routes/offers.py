# Overview: Flask API routes for deal and promotion availability and administration.

from flask import Blueprint, current_app, request

from ..services import offer_service
from ..validation import ConflictError, NotFoundError, ValidationError, parse_int, require_positive_quantity

offers_bp = Blueprint("offers", __name__, url_prefix="/api/offers")


@offers_bp.get("/<kind>/<int:offer_id>/availability")
def offer_availability_route(kind: str, offer_id: int):
    """?quantity= (default 1) units of a deal or promotion."""
    try:
        offer_service.offer_model(kind)
        quantity = require_positive_quantity(request.args.get("quantity", 1))
        result = offer_service.check_offer(kind, offer_id, quantity)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to check availability of %s %s", kind, offer_id)
        return {"error": "Internal server error"}, 500
    return result.to_dict(), 200


@offers_bp.get("/containing/<int:size_id>")
def offers_containing_route(size_id: int):
    return offer_service.find_offers_containing(size_id).to_dict(), 200


@offers_bp.post("/<kind>/<int:offer_id>/reactivate")
def reactivate_offer_route(kind: str, offer_id: int):
    """
    Manually reactivate an auto-deactivated offer.

    Refused with 409 while a constituent is out of stock unless the body
    carries {"force": true}.
    """
    payload = request.get_json(silent=True) or {}
    force = payload.get("force", False)
    if not isinstance(force, bool):
        return {"error": "force must be a boolean"}, 400

    try:
        offer = offer_service.reactivate(kind, parse_int(offer_id, "offer_id"), force=force)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to reactivate %s %s", kind, offer_id)
        return {"error": "Internal server error"}, 500
    return {"offer": offer.to_dict()}, 200
