"""Report and metrics routes (JSON only)."""

from flask import Blueprint, current_app, request

from errors import ValidationError
from services import reports
from services.auth import get_current_user, role_required
from utils import api_response, parse_date, query_flag

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_arg(name):
    raw = request.args.get(name)
    value = parse_date(raw)
    if raw and value is None:
        raise ValidationError("Dates must use YYYY-MM-DD", {name: raw})
    return value


def _utc_offset():
    return current_app.config["LOCALE_CONFIG"].utc_offset_hours


@reports_bp.route("/sales", methods=["GET"])
@role_required("view_reports")
def sales():
    return api_response(
        reports.sales_report(
            _date_arg("date_from"),
            _date_arg("date_to"),
            customer=request.args.get("customer"),
            category_id=request.args.get("category_id", type=int),
            utc_offset_hours=_utc_offset(),
        )
    )


@reports_bp.route("/payments", methods=["GET"])
@role_required("view_reports")
def payments():
    return api_response(
        reports.payment_report(
            _date_arg("date_from"),
            _date_arg("date_to"),
            customer=request.args.get("customer"),
            status=request.args.get("status") or None,
            utc_offset_hours=_utc_offset(),
        )
    )


@reports_bp.route("/analytics", methods=["GET"])
@role_required("view_reports")
def analytics():
    limit = request.args.get("limit", 5, type=int)
    if not 1 <= limit <= 50:
        raise ValidationError("limit must be between 1 and 50", {"limit": limit})
    return api_response(
        reports.analytics(
            request.args.get("period", "30d"),
            _date_arg("date_from"),
            _date_arg("date_to"),
            limit=limit,
            utc_offset_hours=_utc_offset(),
        )
    )


@reports_bp.route("/communications", methods=["GET"])
@role_required("manage_follow_ups")
def communications():
    """Own messages by default; ``include_all_admins=true`` counts everyone's."""
    admin_id = None if query_flag("include_all_admins") else get_current_user().id
    return api_response(
        reports.communication_metrics(
            _date_arg("date_from"),
            _date_arg("date_to"),
            admin_user_id=admin_id,
            utc_offset_hours=_utc_offset(),
        )
    )


@reports_bp.route("/follow-ups", methods=["GET"])
@role_required("manage_follow_ups")
def follow_ups():
    owner_id = None if query_flag("include_all_admins") else get_current_user().id
    return api_response(reports.follow_up_metrics(owner_id, utc_offset_hours=_utc_offset()))
