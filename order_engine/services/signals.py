"""Fire-and-forget signals for downstream notification delivery.

Signals are emitted only after the owning transaction has committed. The
default sink hands the envelope to the celery ``deliver_signal`` task; a
failure to dispatch is logged and never reaches the caller.
"""
import json
import logging
from typing import Any, Callable, Dict, Optional

from order_engine.core.enums import Signal
from order_engine.models.base import utcnow

logger = logging.getLogger(__name__)

SignalSink = Callable[[str, Dict[str, Any]], None]

_sink: Optional[SignalSink] = None


def set_signal_sink(sink: Optional[SignalSink]) -> None:
    global _sink
    _sink = sink


def _enqueue_delivery(signal: str, envelope: Dict[str, Any]) -> None:
    from order_engine.services.tasks import deliver_signal

    deliver_signal.delay(signal, envelope)


def build_envelope(signal: Signal, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "signal": str(signal),
        "payload": json.loads(json.dumps(payload, default=str)),
        "emitted_at": utcnow().isoformat(),
    }


def emit(signal: Signal, payload: Dict[str, Any]) -> None:
    envelope = build_envelope(signal, payload)
    sink = _sink or _enqueue_delivery
    try:
        sink(str(signal), envelope)
    except Exception as e:
        logger.warning(f"Signal {signal} could not be dispatched: {e}")


def emit_status_change(order, previous, actor_id: int) -> None:
    emit(Signal.ORDER_STATUS_CHANGED, {
        "order_id": order.id,
        "order_number": order.order_number,
        "from": str(previous),
        "to": str(order.status),
        "actor_id": actor_id,
    })
