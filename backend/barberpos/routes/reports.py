# Overview: Flask API routes for sales and invoice reports; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_actor
from ..services import reporting_service
from ..services.errors import LedgerError
from ..validation import parse_date_range


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_actor
def sales_report_route():
    """Query params: start, end, group_by (day|week|month), barber_id"""
    try:
        start, end = parse_date_range(request.args.get("start"), request.args.get("end"))
        report = reporting_service.sales_report(
            start=start,
            end=end,
            group_by=request.args.get("group_by", "day"),
            barber_id=request.args.get("barber_id", type=int),
        )
        return jsonify(report), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/sales/stats")
@require_actor
def sales_stats_route():
    try:
        start, end = parse_date_range(request.args.get("start"), request.args.get("end"))
        stats = reporting_service.sales_stats(
            start=start,
            end=end,
            barber_id=request.args.get("barber_id", type=int),
        )
        return jsonify(stats), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/invoices/stats")
@require_actor
def invoice_stats_route():
    try:
        start, end = parse_date_range(request.args.get("start"), request.args.get("end"))
        stats = reporting_service.invoice_stats(
            start=start,
            end=end,
            barber_id=request.args.get("barber_id", type=int),
        )
        return jsonify(stats), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
