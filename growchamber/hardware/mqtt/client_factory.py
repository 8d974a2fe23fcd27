"""
Helpers for constructing MQTT clients that work across paho-mqtt 1.x and 2.x.

The 2.x releases add a callback API version flag; we request the legacy
callback signatures (``on_connect(client, userdata, flags, rc)``,
``on_message(client, userdata, msg)``) and fall back silently on 1.x.
"""
from __future__ import annotations

from typing import Any, Dict

import paho.mqtt.client as mqtt

from growchamber.constants import Timeouts


def create_mqtt_client(
    client_id: str = "",
    *,
    reconnect_min_delay: int = Timeouts.MQTT_RECONNECT_MIN_DELAY,
    reconnect_max_delay: int = Timeouts.MQTT_RECONNECT_MAX_DELAY,
    **kwargs: Any,
) -> mqtt.Client:
    """
    Build an MQTT client with the legacy callback API and backoff reconnects.

    Args:
        client_id: Optional client identifier.
        reconnect_min_delay: First reconnect delay in seconds.
        reconnect_max_delay: Upper bound of the exponential reconnect delay.
        kwargs: Extra keyword arguments forwarded to the client constructor.
    """
    client_kwargs: Dict[str, Any] = {"client_id": client_id or ""}
    client_kwargs["protocol"] = kwargs.pop("protocol", getattr(mqtt, "MQTTv311", 4))
    client_kwargs.update(kwargs)

    callback_api_version = getattr(mqtt, "CallbackAPIVersion", None)
    if callback_api_version is not None:
        client_kwargs["callback_api_version"] = callback_api_version.VERSION1

    try:
        client = mqtt.Client(**client_kwargs)
    except TypeError:
        # paho 1.x has no callback_api_version argument
        client_kwargs.pop("callback_api_version", None)
        client = mqtt.Client(**client_kwargs)

    client.reconnect_delay_set(min_delay=reconnect_min_delay, max_delay=reconnect_max_delay)
    return client
