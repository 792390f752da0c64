"""
Ledger reconciliation job.
"""

import logging

from familyhub.utils.amounts import format_amount

logger = logging.getLogger(__name__)


def audit_ledger_balances():
    """
    Reconcile every member's balances against the award log.

    Runs nightly at 02:00. Verifies that the denormalized family_bucks and
    total_points_earned fields match the sum of the member's AwardEvents.

    Returns:
        list: One dict per member whose balances do not reconcile
    """
    logger.info("Starting ledger balance audit")

    from familyhub.models import Member

    try:
        members = Member.query.order_by(Member.id).all()
        discrepancies = []

        for member in members:
            if not member.verify_ledger_balance():
                awarded = member.calculate_awarded_total()
                discrepancies.append({
                    'member_id': member.id,
                    'name': member.name,
                    'family_bucks': format_amount(member.family_bucks),
                    'total_points_earned': format_amount(member.total_points_earned),
                    'awarded': format_amount(awarded),
                    'diff': format_amount(member.total_points_earned - awarded)
                })

        if discrepancies:
            logger.error(f"Ledger discrepancies found: {discrepancies}")
        else:
            logger.info(f"Ledger audit complete: all {len(members)} member balances verified")

        return discrepancies

    except Exception as e:
        logger.error(f"Error in ledger balance audit: {e}")
        raise
