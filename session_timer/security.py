"""Per-caller bearer tokens for the timer API.

Tokens come from ``TIMER_API_TOKENS`` as comma separated ``caller:token``
pairs, e.g. ``webapp:abc123,billing:def456``. A bare token is accepted and
named ``caller-<n>`` after its position. The authenticated caller name is
stored on ``request.state.caller`` so lifecycle routes can log who asked.
"""
from __future__ import annotations

import logging
import os
import secrets
from typing import Dict, Iterable, Mapping, Optional

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger("mockmate.timer.security")


def parse_service_tokens(entries: Iterable[str]) -> Dict[str, str]:
    """Map caller names to tokens, rejecting duplicate callers."""

    tokens: Dict[str, str] = {}
    for index, entry in enumerate((item.strip() for item in entries), start=1):
        if not entry:
            continue
        caller, separator, token = entry.partition(":")
        if not separator:
            caller, token = f"caller-{index}", entry
        caller, token = caller.strip(), token.strip()
        if not caller or not token:
            raise ValueError(f"Malformed API token entry at position {index}")
        if caller in tokens:
            raise ValueError(f"Duplicate API token entry for caller {caller!r}")
        tokens[caller] = token
    return tokens


def load_tokens_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    env = os.environ if environ is None else environ
    return parse_service_tokens(env.get("TIMER_API_TOKENS", "").split(","))


class ServiceTokenAuth:
    """FastAPI dependency resolving a bearer token to its caller name."""

    def __init__(self, tokens: Mapping[str, str]):
        if not tokens:
            raise ValueError("At least one API token must be provided")
        self._tokens = dict(tokens)
        self._bearer = HTTPBearer(auto_error=False)

    @property
    def callers(self) -> list[str]:
        return sorted(self._tokens)

    def identify(self, provided: str) -> Optional[str]:
        matched: Optional[str] = None
        # Compare against every token so timing does not reveal the match position.
        for caller, token in self._tokens.items():
            if secrets.compare_digest(provided.encode(), token.encode()):
                matched = caller
        return matched

    async def __call__(self, request: Request) -> str:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Bearer token required")

        caller = self.identify(credentials.credentials)
        if caller is None:
            client = request.client.host if request.client else "unknown"
            logger.warning("Rejected timer API request from %s with an unknown token", client)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown service token")

        request.state.caller = caller
        return caller


__all__ = ["ServiceTokenAuth", "load_tokens_from_env", "parse_service_tokens"]
