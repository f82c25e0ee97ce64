from __future__ import annotations

import json
import logging
from functools import wraps
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import DatabaseError
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .eligibility import find_prior_allocation
from .exceptions import AlreadyParticipatedError, DrawError, DrawValidationError
from .models import Prize
from .services import DrawResult, delete_allocation, draw_prize, list_allocations, reset_all

logger = logging.getLogger(__name__)

_IPV4_MAPPED_PREFIX = "::ffff:"


def _json_error(
    code: str,
    message: str,
    status: int = 400,
    *,
    retryable: bool = False,
    extra: Optional[Dict[str, Any]] = None,
) -> JsonResponse:
    payload: Dict[str, Any] = {
        "success": False,
        "error": code,
        "message": message,
        "retryable": retryable,
    }
    if extra:
        payload.update(extra)
    return JsonResponse(payload, status=status, json_dumps_params={"ensure_ascii": False})


def _draw_error_response(exc: DrawError) -> JsonResponse:
    extra = None
    if isinstance(exc, AlreadyParticipatedError):
        extra = {
            "allocation": exc.allocation.to_payload(),
            "prize": exc.allocation.prize.to_payload(),
        }
    return _json_error(exc.code, str(exc), exc.status, retryable=exc.retryable, extra=extra)


def _parse_body(request: HttpRequest) -> Dict[str, Any]:
    if not request.body:
        return request.POST.dict()
    content_type = request.content_type or ""
    if content_type and "json" not in content_type:
        return request.POST.dict()
    try:
        payload = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DrawValidationError(f"Request body is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise DrawValidationError("Request body must be a JSON object.")
    return payload


def client_address(request: HttpRequest) -> str:
    """Return the caller's address, preferring the first ``X-Forwarded-For`` hop."""

    forwarded = request.headers.get("X-Forwarded-For", "")
    address = forwarded.split(",")[0].strip() or request.META.get("REMOTE_ADDR", "")
    if address.lower().startswith(_IPV4_MAPPED_PREFIX):
        address = address[len(_IPV4_MAPPED_PREFIX):]
    return address


def _admin_token(request: HttpRequest) -> str:
    auth_header = request.headers.get("Authorization", "")
    bearer_token = auth_header.replace("Bearer ", "").strip() if auth_header else ""
    return request.headers.get("X-Admin-Token") or bearer_token


def _require_admin_token(func):
    @wraps(func)
    def _wrapped(request, *args, **kwargs):
        expected_token = getattr(settings, "LOTTERY_ADMIN_TOKEN", None)
        if not expected_token:
            return _json_error("not_configured", "LOTTERY_ADMIN_TOKEN is not configured.", status=500)
        if _admin_token(request) != expected_token:
            return _json_error("unauthorized", "Unauthorized.", status=403)
        return func(request, *args, **kwargs)

    return _wrapped


@csrf_exempt
@require_http_methods(["POST"])
def draw(request):
    try:
        payload = _parse_body(request)
        result: DrawResult = draw_prize(
            payload.get("requester_id"),
            payload.get("requester_name"),
            client_address(request),
        )
    except DrawError as exc:
        return _draw_error_response(exc)
    return JsonResponse(
        {
            "success": True,
            "prize": result.prize.to_payload(),
            "allocation": result.allocation.to_payload(),
        },
        status=201,
        json_dumps_params={"ensure_ascii": False},
    )


@require_http_methods(["GET"])
def check_eligibility(request):
    requester_id = (request.GET.get("requester_id") or "").strip()
    if not requester_id:
        return _json_error("validation_error", "requester_id is required.")

    try:
        prior = find_prior_allocation(requester_id, client_address(request))
    except DatabaseError:
        logger.exception("Failed to check eligibility for requester %s", requester_id)
        return _json_error("internal_error", "Unable to check eligibility.", status=500)

    if prior is None:
        return JsonResponse({"success": True, "has_drawn": False})
    return JsonResponse(
        {
            "success": True,
            "has_drawn": True,
            "allocation": prior.to_payload(),
            "prize": prior.prize.to_payload(),
        },
        json_dumps_params={"ensure_ascii": False},
    )


@require_http_methods(["GET"])
def allocations(request):
    try:
        records = list_allocations()
    except DatabaseError:
        logger.exception("Failed to list allocations")
        return _json_error("internal_error", "Unable to load the winner list.", status=500)
    return JsonResponse(
        {"success": True, "allocations": [record.to_payload() for record in records]},
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["DELETE"])
@_require_admin_token
def remove_allocation(request, allocation_id: int):
    try:
        removed = delete_allocation(allocation_id)
    except DrawError as exc:
        return _draw_error_response(exc)
    except DatabaseError:
        logger.exception("Failed to delete allocation %s", allocation_id)
        return _json_error("internal_error", "Unable to delete the allocation.", status=500)
    return JsonResponse(
        {"success": True, "requester_id": removed.requester_id, "prize_id": removed.prize_id}
    )


@csrf_exempt
@require_http_methods(["POST"])
@_require_admin_token
def reset(request):
    try:
        summary = reset_all()
    except DatabaseError:
        logger.exception("Failed to reset the lottery")
        return _json_error("internal_error", "Unable to reset the lottery.", status=500)
    return JsonResponse(
        {
            "success": True,
            "allocations_deleted": summary.allocations_deleted,
            "prizes_restored": summary.prizes_restored,
        }
    )


@require_http_methods(["GET"])
def list_prizes(request):
    try:
        prizes = [
            prize.to_payload()
            for prize in Prize.objects.all().order_by("id")
        ]
    except DatabaseError:
        logger.exception("Failed to list prizes")
        return _json_error("internal_error", "Unable to load the prize list.", status=500)
    return JsonResponse(
        {"success": True, "prizes": prizes},
        json_dumps_params={"ensure_ascii": False},
    )
