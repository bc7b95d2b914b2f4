from __future__ import annotations

import logging
from typing import Callable

from .channels import Channel
from .errors import DeliveryFailure
from .metrics import DELIVERIES
from .models import ChangeRecord
from .sender import send_with_retry

log = logging.getLogger(__name__)


def dispatch(
    changes: list[ChangeRecord],
    channels: list[Channel],
    sender: Callable[..., bool] = send_with_retry,
) -> dict[str, bool]:
    """
    Send one consolidated message per enabled, configured channel.

    Channels are independent: a failure on one is logged and the loop moves
    on. Disabled or unconfigured channels are skipped without error.

    Returns:
        Mapping of channel name to delivery outcome, for attempted channels
    """
    outcomes: dict[str, bool] = {}
    if not changes:
        return outcomes

    for channel in channels:
        if not channel.config.enabled:
            log.debug(f"{channel.name} disabled, skipping")
            continue
        if not channel.is_configured():
            log.info(f"{channel.name} enabled but not configured (empty or placeholder credentials), skipping")
            continue

        try:
            channel.deliver(changes, sender=sender)
            outcomes[channel.name] = True
        except DeliveryFailure as e:
            log.error(f"Delivery failed: {e}")
            outcomes[channel.name] = False
        except Exception as e:
            log.error(f"{channel.name} notification raised {type(e).__name__}: {e}")
            outcomes[channel.name] = False

        DELIVERIES.labels(
            channel=channel.name,
            outcome="sent" if outcomes[channel.name] else "failed",
        ).inc()

    return outcomes
