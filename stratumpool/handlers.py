"""Handlers for the Stratum methods a miner may call."""

from __future__ import annotations

import logging

from .errors import AuthorizationFailure, InvalidMethod, InvalidParams, SubscriptionFailure
from .messages import Request, Response
from .session import EXTRANONCE2_SIZE, Session

logger = logging.getLogger(__name__)


async def handle_message(message: Request, session: Session) -> Response:
    """Dispatch a request to its handler and return the response to send."""
    handlers = {
        "mining.subscribe": handle_subscribe,
        "mining.authorize": handle_authorize,
        "mining.submit": handle_submit,
    }
    handler = handlers.get(message.method)
    if handler is None:
        raise InvalidMethod(message.method)
    return await handler(message, session)


async def handle_subscribe(message: Request, session: Session) -> Response:
    """Answer mining.subscribe with subscription ids, extranonce1 and its size."""
    logger.debug("Handling mining.subscribe message")
    if session.subscribed:
        logger.debug("Client already subscribed. No response sent.")
        raise SubscriptionFailure("Already subscribed")
    session.subscribed = True
    # Notify and set_difficulty subscriptions get distinct ids via a suffix.
    result = [
        [
            ["mining.notify", f"{session.id}1"],
            ["mining.set_difficulty", f"{session.id}2"],
        ],
        session.enonce1,
        EXTRANONCE2_SIZE,
    ]
    return Response.new_ok(message.id, result)


async def handle_authorize(message: Request, session: Session) -> Response:
    """Store the miner's credentials; authorizing twice is refused.

    Subscription is not required first, since some miners authorize
    before they subscribe.
    """
    logger.debug("Handling mining.authorize message")
    if session.username is not None:
        logger.debug("Client already authorized. No response sent.")
        raise AuthorizationFailure("Already authorized")
    if len(message.params) < 2:
        raise InvalidParams()
    session.username = message.params[0]
    session.password = message.params[1]
    return Response.new_ok(message.id, True)


async def handle_submit(message: Request, session: Session) -> Response:
    """Acknowledge a submitted share."""
    logger.debug("Handling mining.submit message")
    return Response.new_ok(message.id, True)