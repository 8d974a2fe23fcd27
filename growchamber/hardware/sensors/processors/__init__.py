"""
Sensor Processors
=================

Normalization of controller payloads:

- utils: coercion helpers and payload field names
- calibration_processor: soil-moisture ADC -> percent
- fusion_processor: raw snapshot -> canonical fused conditions
"""
