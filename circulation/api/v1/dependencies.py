from typing import Annotated, Optional

from fastapi import Header

from circulation.core.logging import actor_id_ctx


async def get_actor_id(
    x_employee_id: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """Take the acting employee from ``X-Employee-ID`` and bind it to the log context.

    Identity resolution happens upstream; the header is trusted as given.
    """
    if x_employee_id:
        actor_id_ctx.set(x_employee_id)
    return x_employee_id
