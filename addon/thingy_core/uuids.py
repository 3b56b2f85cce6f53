"""Nordic Thingy:52 GATT service and characteristic UUIDs.

All Thingy UUIDs share the base ``ef68xxxx-9b35-4933-9b10-52ffa9740042``;
only the 16-bit slot differs.
"""

from __future__ import annotations

import uuid

_BASE = "ef68{:04x}-9b35-4933-9b10-52ffa9740042"


def thingy_uuid(slot: int) -> str:
    """Return the canonical Thingy UUID for a 16-bit slot (eg 0x0201)."""
    return _BASE.format(slot)


def normalize_uuid(value: str) -> str:
    """Canonical dashed lowercase form; accepts dashed or bare 32-hex input."""
    return str(uuid.UUID(str(value)))


# Configuration service
TCS_UUID = thingy_uuid(0x0100)

# Environment service
TES_UUID = thingy_uuid(0x0200)
TES_TEMP_UUID = thingy_uuid(0x0201)
TES_PRESS_UUID = thingy_uuid(0x0202)
TES_HUMID_UUID = thingy_uuid(0x0203)
TES_GAS_UUID = thingy_uuid(0x0204)
TES_COLOR_UUID = thingy_uuid(0x0205)
TES_CONF_UUID = thingy_uuid(0x0206)

# User interface service
UIS_UUID = thingy_uuid(0x0300)
UIS_LED_UUID = thingy_uuid(0x0301)
UIS_BTN_UUID = thingy_uuid(0x0302)
UIS_PIN_UUID = thingy_uuid(0x0303)

# Motion service
TMS_UUID = thingy_uuid(0x0400)
TMS_CONF_UUID = thingy_uuid(0x0401)
TMS_TAP_UUID = thingy_uuid(0x0402)
TMS_ORIENTATION_UUID = thingy_uuid(0x0403)
TMS_QUATERNION_UUID = thingy_uuid(0x0404)
TMS_STEP_COUNTER_UUID = thingy_uuid(0x0405)
TMS_RAW_DATA_UUID = thingy_uuid(0x0406)
TMS_EULER_UUID = thingy_uuid(0x0407)
TMS_ROTATION_UUID = thingy_uuid(0x0408)
TMS_HEADING_UUID = thingy_uuid(0x0409)
TMS_GRAVITY_UUID = thingy_uuid(0x040A)

# Sound service
TSS_UUID = thingy_uuid(0x0500)
TSS_CONF_UUID = thingy_uuid(0x0501)
TSS_SPEAKER_DATA_UUID = thingy_uuid(0x0502)
TSS_SPEAKER_STAT_UUID = thingy_uuid(0x0503)
TSS_MIC_UUID = thingy_uuid(0x0504)
