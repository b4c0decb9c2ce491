"""
domain-sync — Provider payload normalizer.

Unwraps the domain intelligence provider's response envelope and validates
it into a typed ``DomainSnapshot``.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from domain_sync.core.errors import UpstreamError
from domain_sync.domain.models import DomainSnapshot

logger = logging.getLogger(__name__)


def unwrap_domain_info(payload: Any) -> dict:
    """Return the ``domainInfo`` dict from a provider response.

    The provider answers ``{"body": {"domainInfo": {...}}}``; a bare
    ``{"domainInfo": {...}}`` or an already-unwrapped dict is accepted too.
    """
    if not isinstance(payload, dict):
        raise UpstreamError("Provider response is not a JSON object")

    body = payload.get("body", payload)
    if not isinstance(body, dict):
        raise UpstreamError("Provider response body is not a JSON object")

    info = body.get("domainInfo", body)
    if not isinstance(info, dict) or not info:
        raise UpstreamError("Provider response has no domainInfo")
    return info


def parse_snapshot(domain: str, payload: Any) -> DomainSnapshot:
    """Validate a raw provider response into a ``DomainSnapshot``.

    Parameters
    ----------
    domain:
        Domain name the request was made for; fills ``snapshot.domain`` when
        the provider omits it.
    payload:
        Decoded JSON body.

    Raises
    ------
    UpstreamError
        When the envelope or any section fails validation.
    """
    info = unwrap_domain_info(payload)
    try:
        snapshot = DomainSnapshot.model_validate(info)
    except PydanticValidationError as exc:
        logger.warning("Invalid domainInfo for %s: %s", domain, exc.error_count())
        raise UpstreamError(f"Malformed domainInfo for {domain}") from exc

    if not snapshot.domain:
        snapshot.domain = domain
    return snapshot
