"""
Payment Interest Service

Installment surcharge resolution for card payments plus CRUD on the
credit_interest_config table.

Resolution is pure: configs are always passed in by the caller, never
fetched here. Installments use a FLAT-FEE model - the surcharge is applied
once to the whole amount and then divided evenly (no amortization).
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from pricing_errors import InvalidInterestConfigError
from pricing_models import (
    InstallmentQuote,
    InterestConfigType,
    PaymentInterestConfig,
    PaymentType,
    load_pricing_settings,
)
from .database import get_supabase

logger = logging.getLogger(__name__)

INTEREST_CONFIG_TABLE = "credit_interest_config"

ConfigLike = Union[PaymentInterestConfig, Dict[str, Any]]


# ============================================================================
# Row mapping
# ============================================================================

def config_from_row(row: Dict[str, Any]) -> PaymentInterestConfig:
    """Build a config from a credit_interest_config row."""
    return PaymentInterestConfig(
        id=row.get("id"),
        supplier_id=row.get("supplier_id"),
        payment_type=row.get("payment_type") or PaymentType.CREDIT,
        installments=row.get("installments") or 1,
        interest_rate_percent=row.get("interest_rate", row.get("interest_rate_percent")),
        config_type=row.get("config_type"),
        per_installment_rates=row.get("per_installment_rates"),
        is_active=row.get("is_active") is not False,
    )


def config_to_row(config: PaymentInterestConfig) -> Dict[str, Any]:
    """Serialize for database operations."""
    is_per_installment = config.config_type == InterestConfigType.PER_INSTALLMENT
    return {
        "supplier_id": config.supplier_id,
        "payment_type": config.payment_type.value,
        "installments": config.installments,
        "interest_rate": config.interest_rate_percent,
        "config_type": config.config_type.value,
        # JSON object keys are strings
        "per_installment_rates": {
            str(k): v for k, v in config.per_installment_rates.items()
        } if is_per_installment else {},
        "is_active": config.is_active,
    }


def _coerce_configs(configs: Optional[Iterable[ConfigLike]]) -> List[PaymentInterestConfig]:
    """Accept models or raw rows; rows that fail validation are skipped."""
    coerced = []
    for config in configs or []:
        if isinstance(config, PaymentInterestConfig):
            coerced.append(config)
            continue
        try:
            coerced.append(config_from_row(config))
        except ValidationError as e:
            logger.warning(f"Skipping invalid interest config {config.get('id')}: {e}")
    return coerced


def _payment_type(value: Union[PaymentType, str]) -> Optional[PaymentType]:
    try:
        return PaymentType(value)
    except ValueError:
        return None


# ============================================================================
# Resolution (pure)
# ============================================================================

def find_interest_config(
    configs: Optional[Iterable[ConfigLike]],
    payment_type: Union[PaymentType, str],
    installments: int,
) -> Optional[PaymentInterestConfig]:
    """Active config matching (payment_type, installments) exactly."""
    kind = _payment_type(payment_type)
    if kind is None:
        return None
    if kind == PaymentType.DEBIT:
        installments = 1

    for config in _coerce_configs(configs):
        if config.is_active and config.payment_type == kind and config.installments == installments:
            return config
    return None


def resolve_interest_rate(
    configs: Optional[Iterable[ConfigLike]],
    payment_type: Union[PaymentType, str],
    installments: int,
) -> float:
    """
    Surcharge rate (%) for a payment.

    Per-installment configs use their table entry for the installment count
    when one exists, the flat rate otherwise. No matching config means no
    surcharge (0), which is not an error.
    """
    config = find_interest_config(configs, payment_type, installments)
    if config is None:
        logger.debug(f"No interest config for {payment_type} x{installments}, rate 0")
        return 0.0

    if _payment_type(payment_type) == PaymentType.DEBIT:
        installments = 1

    if (
        config.config_type == InterestConfigType.PER_INSTALLMENT
        and installments in config.per_installment_rates
    ):
        return config.per_installment_rates[installments]
    return config.interest_rate_percent


def compute_installment(base_amount: float, installments: int, rate: float) -> InstallmentQuote:
    """
    Flat-fee installment breakdown.

    final_price       = base_amount * (1 + rate/100)
    installment_value = final_price / installments
    """
    count = installments if installments and installments >= 1 else 1
    final_price = (base_amount or 0) * (1 + (rate or 0) / 100)
    return InstallmentQuote(
        installments=count,
        interest_rate_percent=rate or 0,
        installment_value=final_price / count,
        final_price=final_price,
    )


def quote_installments(
    configs: Optional[Iterable[ConfigLike]],
    base_amount: float,
    payment_type: Union[PaymentType, str],
    installments: int = 1,
) -> InstallmentQuote:
    """Resolve the rate and compute the installment breakdown in one call."""
    kind = _payment_type(payment_type)
    if kind == PaymentType.DEBIT:
        installments = 1

    rate = resolve_interest_rate(configs, payment_type, installments)
    result = compute_installment(base_amount, installments, rate)
    result.payment_type = kind
    return result


def build_installment_options(
    configs: Optional[Iterable[ConfigLike]],
    base_amount: float,
    max_installments: Optional[int] = None,
) -> List[InstallmentQuote]:
    """
    Payment options for a price: debit first, then credit 1..max_installments.
    """
    if max_installments is None:
        max_installments = load_pricing_settings().max_credit_installments

    coerced = _coerce_configs(configs)
    options = [quote_installments(coerced, base_amount, PaymentType.DEBIT, 1)]
    for count in range(1, max_installments + 1):
        options.append(quote_installments(coerced, base_amount, PaymentType.CREDIT, count))
    return options


def get_debit_config(configs: Optional[Iterable[ConfigLike]]) -> Optional[PaymentInterestConfig]:
    """Active debit config, if any."""
    return find_interest_config(configs, PaymentType.DEBIT, 1)


def get_credit_configs(configs: Optional[Iterable[ConfigLike]]) -> List[PaymentInterestConfig]:
    """Active credit configs ordered by installments."""
    credit = [
        c for c in _coerce_configs(configs)
        if c.is_active and c.payment_type == PaymentType.CREDIT
    ]
    return sorted(credit, key=lambda c: c.installments)


# ============================================================================
# Validation
# ============================================================================

def build_interest_config(
    payment_type: Union[PaymentType, str],
    installments: int,
    interest_rate_percent: float = 0,
    config_type: Union[InterestConfigType, str] = InterestConfigType.FLAT,
    per_installment_rates: Optional[Dict[Any, Any]] = None,
    supplier_id: Optional[str] = None,
) -> PaymentInterestConfig:
    """
    Validate a new config.

    Raises:
        InvalidInterestConfigError: debit with installments != 1, credit
            outside 1..24, negative rates or unknown types.
    """
    try:
        return PaymentInterestConfig(
            supplier_id=supplier_id,
            payment_type=payment_type,
            installments=installments,
            interest_rate_percent=interest_rate_percent,
            config_type=config_type,
            per_installment_rates=per_installment_rates or {},
        )
    except ValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise InvalidInterestConfigError(messages) from e


# ============================================================================
# CREATE Operations
# ============================================================================

def create_interest_config(
    supplier_id: str,
    payment_type: Union[PaymentType, str],
    installments: int,
    interest_rate_percent: float = 0,
    config_type: Union[InterestConfigType, str] = InterestConfigType.FLAT,
    per_installment_rates: Optional[Dict[Any, Any]] = None,
) -> Optional[PaymentInterestConfig]:
    """
    Create an interest config for a supplier.

    Invalid configs raise InvalidInterestConfigError before any database
    call. Database failures are logged and return None.
    """
    config = build_interest_config(
        payment_type=payment_type,
        installments=installments,
        interest_rate_percent=interest_rate_percent,
        config_type=config_type,
        per_installment_rates=per_installment_rates,
        supplier_id=supplier_id,
    )

    supabase = get_supabase()

    try:
        result = supabase.table(INTEREST_CONFIG_TABLE).insert(config_to_row(config)).execute()

        if result.data:
            return config_from_row(result.data[0])
        return None
    except Exception as e:
        logger.error(f"Error creating interest config: {e}")
        return None


# ============================================================================
# READ Operations
# ============================================================================

def get_interest_configs(supplier_id: str, active_only: bool = True) -> List[PaymentInterestConfig]:
    """
    Get interest configs for a supplier ordered by installments.

    Args:
        supplier_id: UUID of the supplier (agency)
        active_only: Only return active configs (default: True)

    Returns:
        List of PaymentInterestConfig (rows failing validation are skipped)
    """
    supabase = get_supabase()

    try:
        query = supabase.table(INTEREST_CONFIG_TABLE).select("*").eq("supplier_id", supplier_id)

        if active_only:
            query = query.eq("is_active", True)

        result = query.order("installments").execute()

        return _coerce_configs(result.data or [])
    except Exception as e:
        logger.error(f"Error getting interest configs: {e}")
        return []


def get_interest_config(config_id: str) -> Optional[PaymentInterestConfig]:
    """Get a single config by ID."""
    supabase = get_supabase()

    try:
        result = supabase.table(INTEREST_CONFIG_TABLE).select("*").eq("id", config_id).execute()

        if result.data:
            return config_from_row(result.data[0])
        return None
    except Exception as e:
        logger.error(f"Error getting interest config: {e}")
        return None


# ============================================================================
# UPDATE Operations
# ============================================================================

def update_interest_config(config_id: str, **changes: Any) -> Optional[PaymentInterestConfig]:
    """
    Update a config. The merged result is validated before writing.

    Accepts installments, interest_rate_percent, config_type and
    per_installment_rates.

    Raises:
        InvalidInterestConfigError: merged config is invalid
    """
    current = get_interest_config(config_id)
    if not current:
        logger.warning(f"Interest config not found: {config_id}")
        return None

    merged = build_interest_config(
        payment_type=current.payment_type,
        installments=changes.get("installments", current.installments),
        interest_rate_percent=changes.get("interest_rate_percent", current.interest_rate_percent),
        config_type=changes.get("config_type", current.config_type),
        per_installment_rates=changes.get("per_installment_rates", current.per_installment_rates),
        supplier_id=current.supplier_id,
    )

    row = config_to_row(merged)
    row.pop("supplier_id")
    row["updated_at"] = datetime.now().isoformat()

    supabase = get_supabase()

    try:
        result = supabase.table(INTEREST_CONFIG_TABLE).update(row).eq("id", config_id).execute()

        if result.data:
            return config_from_row(result.data[0])
        return None
    except Exception as e:
        logger.error(f"Error updating interest config: {e}")
        return None


def deactivate_interest_config(config_id: str) -> bool:
    """Soft-disable a config so it stops resolving."""
    supabase = get_supabase()

    try:
        result = supabase.table(INTEREST_CONFIG_TABLE).update({
            "is_active": False,
            "updated_at": datetime.now().isoformat(),
        }).eq("id", config_id).execute()

        return bool(result.data)
    except Exception as e:
        logger.error(f"Error deactivating interest config: {e}")
        return False


# ============================================================================
# DELETE Operations
# ============================================================================

def delete_interest_config(config_id: str) -> bool:
    """Delete a config permanently."""
    supabase = get_supabase()

    try:
        supabase.table(INTEREST_CONFIG_TABLE).delete().eq("id", config_id).execute()
        return True
    except Exception as e:
        logger.error(f"Error deleting interest config: {e}")
        return False
