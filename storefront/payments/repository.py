from typing import Any, Dict, Optional
from sqlalchemy import or_, select, update
from storefront.schema.checkout_submission import CheckoutSubmission, SubmissionStatus


async def record_submission(session, order_reference: str, user_id: int, payment_method: str, amount: int,
                            is_multi_address: bool, order_data: Dict[str, Any]) -> int:
    sub = CheckoutSubmission(
        order_reference=order_reference,
        user_id=user_id,
        payment_method=payment_method,
        amount=amount,
        is_multi_address=is_multi_address,
        order_data=order_data,
        status=SubmissionStatus.PENDING.value,
    )
    session.add(sub)
    # flush to get id
    await session.flush()
    return sub.id


async def update_submission(session, order_reference: str, user_id: int, status: SubmissionStatus, **fields: Any):
    # rows are only ever moved by their owner
    stmt = update(CheckoutSubmission
                  ).where(CheckoutSubmission.user_id == user_id,
                          or_(CheckoutSubmission.order_reference == order_reference,
                              CheckoutSubmission.server_order_id == order_reference)
                  ).values(status=status.value, **fields)
    await session.execute(stmt)


async def get_submission(session, order_reference: str) -> Optional[CheckoutSubmission]:
    stmt = select(CheckoutSubmission).where(CheckoutSubmission.order_reference == order_reference)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()
