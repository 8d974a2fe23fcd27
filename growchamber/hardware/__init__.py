"""Controller-facing adapters: MQTT transport and sensor payload processors."""
