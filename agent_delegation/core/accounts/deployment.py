"""
Idempotent smart account deployment.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..errors import DeploymentRaceError
from ..execution.userop import NO_OP_CALL
from .capabilities import ChainReader
from .smart_account import HybridSmartAccount

if TYPE_CHECKING:
    from ..execution.runner import SponsoredOperationRunner

logger = logging.getLogger(__name__)


def has_code(code: Optional[str]) -> bool:
    return bool(code) and code not in ("0x", "0x0", "0x00")


class DeploymentGate:
    """
    Deploys accounts on first use.

    Deployment is a sponsored no-op operation (``to=0x0``, empty data);
    the EntryPoint runs the factory because the operation carries init
    code. Calling ``ensure_deployed`` twice returns ``True`` then ``False``.
    """

    def __init__(self, chain: ChainReader, runner: "SponsoredOperationRunner"):
        self.chain = chain
        self.runner = runner

    async def is_deployed(self, address: str) -> bool:
        return has_code(await self.chain.get_code(address))

    async def ensure_deployed(self, account: HybridSmartAccount, *, nonce: Optional[int] = None) -> bool:
        """
        Make sure code exists at the account address.

        Returns:
            True if this call deployed the account, False if it already existed
        """
        if await self.is_deployed(account.address):
            account.mark_deployed()
            return False

        logger.info(f"Deploying account {account.address}")
        try:
            await self.runner.run(account, [NO_OP_CALL], nonce=nonce)
        except DeploymentRaceError:
            if await self.is_deployed(account.address):
                logger.warning(f"Account {account.address} was deployed concurrently")
                account.mark_deployed()
                return False
            raise

        account.mark_deployed()
        return True
