"""Terms-holder on-the-road (OTR) savings."""

from typing import Dict, Optional, Tuple

from .matrix import round_half_up
from .schema import TermsHolderOpportunity


def calculate_terms_holder_opportunity(
    provider_otr: Optional[int],
    terms_holder_otr: Optional[int],
) -> Optional[TermsHolderOpportunity]:
    """
    Calculate the saving of ordering through a terms holder.

    Args:
        provider_otr: OTR price via the quoting funder (minor units)
        terms_holder_otr: OTR price via the terms holder (minor units)

    Returns:
        TermsHolderOpportunity, or None unless both prices are positive and
        the terms holder is strictly cheaper
    """
    if not provider_otr or not terms_holder_otr or provider_otr <= 0 or terms_holder_otr <= 0:
        return None

    savings = provider_otr - terms_holder_otr
    if savings <= 0:
        return None

    return TermsHolderOpportunity(
        provider_otr=provider_otr,
        terms_holder_otr=terms_holder_otr,
        savings=savings,
        savings_percent=round_half_up(savings / provider_otr * 1000) / 10,
    )


def best_terms_holder_opportunity(
    provider_otr: Optional[int],
    terms_holder_otrs: Dict[str, Optional[int]],
) -> Optional[Tuple[str, TermsHolderOpportunity]]:
    """
    Pick the terms holder with the largest saving.

    Returns:
        (terms holder name, opportunity), or None when none saves money.
        Equal savings resolve to the alphabetically first name.
    """
    best = None
    for name in sorted(terms_holder_otrs):
        opportunity = calculate_terms_holder_opportunity(provider_otr, terms_holder_otrs[name])
        if opportunity and (best is None or opportunity.savings > best[1].savings):
            best = (name, opportunity)
    return best


def savings_tier(savings_percent: float) -> str:
    """Badge tier for a savings percentage."""
    if savings_percent >= 10:
        return "great"
    if savings_percent >= 5:
        return "good"
    if savings_percent >= 2:
        return "moderate"
    return "small"
