"""Follow-up routes."""

from flask import Blueprint, current_app, request

from errors import ValidationError
from models import VALID_FOLLOW_UP_TYPES
from schemas import FollowUpCreate, NotesInput
from serializers import follow_up_to_dict
from services import followup
from services.auth import get_current_user, role_required
from utils import api_response, json_body, query_flag

follow_ups_bp = Blueprint("follow_ups", __name__, url_prefix="/api/follow-ups")


@follow_ups_bp.route("", methods=["GET"])
@role_required("manage_follow_ups")
def list_follow_ups():
    """``?type=today|overdue``; ``include_all_admins=true`` drops the owner filter."""
    owner_id = None if query_flag("include_all_admins") else get_current_user().id
    kind = request.args.get("type")
    if kind == "today":
        rows = followup.list_today(
            owner_id,
            utc_offset_hours=current_app.config["LOCALE_CONFIG"].utc_offset_hours,
        )
    elif kind == "overdue":
        rows = followup.list_overdue(owner_id)
    else:
        raise ValidationError('Invalid type parameter. Use "today" or "overdue"')
    return api_response([follow_up_to_dict(f) for f in rows])


@follow_ups_bp.route("", methods=["POST"])
@role_required("manage_follow_ups")
def create():
    data = FollowUpCreate.from_payload(json_body(), VALID_FOLLOW_UP_TYPES)
    row = followup.schedule(
        data.customer_id,
        data.follow_up_type,
        data.scheduled_at,
        get_current_user().id,
        quotation_id=data.quotation_id,
        order_id=data.order_id,
        notes=data.notes,
    )
    return api_response(follow_up_to_dict(row), 201)


@follow_ups_bp.route("/<int:follow_up_id>/complete", methods=["POST"])
@role_required("manage_follow_ups")
def complete(follow_up_id: int):
    data = NotesInput.from_payload(json_body())
    row = followup.complete(follow_up_id, data.notes, get_current_user().id)
    return api_response(follow_up_to_dict(row))


@follow_ups_bp.route("/<int:follow_up_id>/cancel", methods=["POST"])
@role_required("manage_follow_ups")
def cancel(follow_up_id: int):
    data = NotesInput.from_payload(json_body())
    return api_response(follow_up_to_dict(followup.cancel(follow_up_id, data.notes)))
