"""hub-bridge: move USDC from the Arc hub to extension chains over CCTP V2."""

__version__ = "0.1.0"
