from .bundler import BundlerConfig, BundlerProvider
from .chain import ChainRpcConfig, ChainRpcProvider
from .paymaster import PaymasterConfig, PaymasterProvider
from .relay import BundlerRelay

__all__ = [
    "BundlerConfig",
    "BundlerProvider",
    "BundlerRelay",
    "ChainRpcConfig",
    "ChainRpcProvider",
    "PaymasterConfig",
    "PaymasterProvider",
]
