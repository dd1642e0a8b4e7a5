"""Lissabon light bridge: BLE and WiFi transports behind one light interface."""
