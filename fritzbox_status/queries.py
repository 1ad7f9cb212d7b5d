"""
DSL Status Query for Fritz!Box Status Client
============================================

A ready-made query object for the DSL line status shown on the Fritz!Box
"DSL-Informationen" pages: firmware and DSLAM details, line data (rates,
margins, attenuation, power cutback) and the per-tone bin data.

Example:
    >>> status = session.query_object(DslStatusQuery())
    >>> status.dsl.ds_data_rate
    16000

License: MIT
"""

import math

from .converters import StandardConverters
from .marshaller import QueryParameter, QueryPropagation

NETTO_MTU = 1452
BRUTTO_MTU = 1696

BYTE_UNITS = ["Byte", "kB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]


class BinData(StandardConverters):
    """Per-tone SNR and bit loading."""

    snr = QueryParameter("sar:status/ds_snrArrayXML", "IntArrayConverter")
    bits = QueryParameter("sar:status/bitsArrayXML", "IntArrayConverter")
    pilot_tone = QueryParameter("sar:status/pilot", "IntConverter", default=-1)


class DslData(StandardConverters):
    """DSL line data, downstream and upstream."""

    ds_max_dslam_rate = QueryParameter("sar:status/exp_ds_max_rate", "IntConverter")
    us_max_dslam_rate = QueryParameter("sar:status/exp_us_max_rate", "IntConverter")
    ds_min_dslam_rate = QueryParameter("sar:status/exp_ds_min_rate", "IntConverter")
    us_min_dslam_rate = QueryParameter("sar:status/exp_us_min_rate", "IntConverter")
    ds_capacity = QueryParameter("sar:status/ds_attainable", "IntConverter")
    us_capacity = QueryParameter("sar:status/us_attainable", "IntConverter")
    ds_data_rate = QueryParameter("sar:status/dsl_ds_rate", "IntConverter")
    us_data_rate = QueryParameter("sar:status/dsl_us_rate", "IntConverter")

    # Latency
    ds_interleaving = QueryParameter("sar:status/ds_path", "BooleanConverter")
    us_interleaving = QueryParameter("sar:status/us_path", "BooleanConverter")
    ds_delay = QueryParameter("sar:status/ds_delay", "IntConverter")
    us_delay = QueryParameter("sar:status/us_delay", "IntConverter")

    # Online reconfiguration
    ds_bitswap = QueryParameter("sar:status/exp_ds_olr_Bitswap", "BooleanConverter")
    us_bitswap = QueryParameter("sar:status/exp_us_olr_Bitswap", "BooleanConverter")
    ds_sra = QueryParameter("sar:status/exp_ds_olr_SeamlessRA", "BooleanConverter")
    us_sra = QueryParameter("sar:status/exp_us_olr_SeamlessRA", "BooleanConverter")

    # Impulse noise protection
    ds_inp = QueryParameter("sar:status/exp_ds_inp_act", "FloatConverter")
    us_inp = QueryParameter("sar:status/exp_us_inp_act", "FloatConverter")

    ds_snrm = QueryParameter("sar:status/ds_margin", "IntConverter")
    us_snrm = QueryParameter("sar:status/us_margin", "IntConverter")
    ds_attenuation = QueryParameter("sar:status/ds_attenuation", "IntConverter")
    us_attenuation = QueryParameter("sar:status/us_attenuation", "IntConverter")
    ds_pcb = QueryParameter("sar:status/ds_powercutback", "IntConverter")
    us_pcb = QueryParameter("sar:status/us_powercutback", "IntConverter")

    # Aggregate transmit power
    ds_atp = QueryParameter("sar:status/exp_ds_max_nom_atp", "FloatConverter")
    us_atp = QueryParameter("sar:status/exp_us_max_nom_atp", "FloatConverter")

    dsl_tone_set = QueryParameter("sar:status/dsl_tone_set")
    carrier_state = QueryParameter("sar:status/dsl_carrier_state", "IntConverter")
    train_state = QueryParameter("sar:status/dsl_train_state", "IntConverter")
    trained_mode = QueryParameter("sar:status/trained_mode")
    downstream_snr_offset = QueryParameter("sar:settings/DownstreamMarginOffset", "IntConverter")


class DslStatusQuery:
    """Firmware, DSLAM and DSL line status in one query."""

    firmware = QueryParameter("logic:status/nspver")
    dsl_driver = QueryParameter("sar:status/DSP_Datapump_ver")
    dslam_vendor = QueryParameter("sar:status/ATUC_vendor_ID")
    dslam_vendor_version = QueryParameter("sar:status/ATUC_vendor_version")
    dslam_vendor_id = QueryParameter("sar:status/dslam_VendorID")
    dslam_version = QueryParameter("sar:status/dslam_VersionNumber")
    dslam_serial_number = QueryParameter("sar:status/dslam_SerialNumber")

    bin = QueryPropagation(BinData)
    dsl = QueryPropagation(DslData)


def sync_to_real(kbit: int, netto_mtu: float = NETTO_MTU, brutto_mtu: float = BRUTTO_MTU) -> str:
    """
    Estimate the usable throughput of a sync rate.

    The sync rate includes ATM/PPPoE overhead; the ratio of payload MTU to
    wire frame size approximates what is left for IP traffic.

    Args:
        kbit: Sync rate in kbit/s
        netto_mtu: Payload bytes per frame
        brutto_mtu: Bytes on the wire per frame

    Returns:
        Formatted rate like ``"1.63 MB/s"`` for 16000 kbit/s
    """
    rate = kbit * 1000 * (netto_mtu / brutto_mtu) / 8

    unit = 0
    if rate > 0:
        unit = int(math.log2(rate) / 10)
    if unit < 0 or unit >= len(BYTE_UNITS):
        unit = 0

    return f"{rate / (1 << (unit * 10)):,.2f} {BYTE_UNITS[unit]}/s"


__all__ = ["BinData", "DslData", "DslStatusQuery", "sync_to_real"]
