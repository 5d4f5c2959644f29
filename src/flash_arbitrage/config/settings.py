"""Application settings and configuration."""
from decimal import Decimal
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


WEI_PER_ETH = 10**18


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Server settings
    host: str = Field(default="0.0.0.0", description="Host to bind the health API")
    port: int = Field(default=8000, description="Port to bind the health API")
    log_level: str = Field(default="INFO", description="Root log level", alias="LOG_LEVEL")
    
    # Blockchain settings
    ethereum_rpc_http: Optional[str] = Field(
        default=None,
        description="Ethereum HTTP RPC URL",
        alias="ETHEREUM_RPC_HTTP"
    )
    
    ethereum_rpc_wss: Optional[str] = Field(
        default=None,
        description="Ethereum WebSocket RPC URL for the pending transaction stream",
        alias="ETHEREUM_RPC_WSS"
    )
    
    chain_id: int = Field(default=1, description="Chain ID", alias="CHAIN_ID")
    
    # Key material
    wallet_private_key: Optional[str] = Field(
        default=None,
        description="Private key of the executing account",
        alias="WALLET_PRIVATE_KEY"
    )
    
    # Relay settings
    flashbots_network: str = Field(
        default="mainnet",
        description="Flashbots network (mainnet, sepolia, holesky) selecting the default relay",
        alias="FLASHBOTS_NETWORK"
    )
    
    flashbots_relay_url: Optional[str] = Field(
        default=None,
        description="Bundle relay endpoint; overrides the network default",
        alias="FLASHBOTS_RELAY_URL"
    )
    
    flashbots_relay_signer_key: Optional[str] = Field(
        default=None,
        description="Key used to sign relay requests (reputation identity, holds no funds)",
        alias="FLASHBOTS_RELAY_SIGNER_KEY"
    )
    
    # Contracts and venues
    flash_loan_contract_address: Optional[str] = Field(
        default=None,
        description="Deployed flash loan contract",
        alias="FLASH_LOAN_CONTRACT_ADDRESS"
    )
    
    target_token_address: str = Field(
        default="0xC02aaA39b223FE8D0A0e5C4F27EAD9083C756Cc2",  # WETH
        description="Asset borrowed by the flash loan",
        alias="TARGET_TOKEN_ADDRESS"
    )
    
    dex_a_pair_address: str = Field(
        default="0xA478c2975ab1Ea89e8196811F51A7B9429c786c9",
        description="First liquidity venue (Uniswap V2 style pair)",
        alias="DEX_A_PAIR_ADDRESS"
    )
    
    dex_b_pair_address: str = Field(
        default="0x06da0fdE810a9f5B4C72B3C84b2F823eF69f8480",
        description="Second liquidity venue (Uniswap V2 style pair)",
        alias="DEX_B_PAIR_ADDRESS"
    )
    
    # Trading settings
    loan_multiplier: int = Field(
        default=10,
        description="Loan size as a multiple of the estimated profit",
        alias="LOAN_MULTIPLIER"
    )
    
    max_loan_amount_eth: Decimal = Field(
        default=Decimal("100000"),
        description="Ceiling for a single flash loan, in base asset units",
        alias="MAX_LOAN_AMOUNT_ETH"
    )
    
    confidence_threshold: float = Field(
        default=0.85,
        description="Confidence score an opportunity must strictly exceed",
        alias="CONFIDENCE_THRESHOLD"
    )
    
    min_profit_eth: Decimal = Field(
        default=Decimal("0.05"),
        description="Minimum estimated profit before scoring confidence",
        alias="MIN_PROFIT_ETH"
    )
    
    price_gap_divisor: int = Field(
        default=100,
        description="Relative price gap threshold as a divisor of the reference price (100 = 1%)",
        alias="PRICE_GAP_DIVISOR"
    )
    
    flash_loan_gas_limit: int = Field(
        default=3_000_000,
        description="Gas limit for the flash loan transaction",
        alias="FLASH_LOAN_GAS_LIMIT"
    )
    
    # Monitoring settings
    health_check_interval_seconds: float = Field(
        default=10.0,
        description="Interval of the liveness and nonce resync tick",
        alias="HEALTH_CHECK_INTERVAL_SECONDS"
    )
    
    scoring_timeout_seconds: float = Field(
        default=2.0,
        description="Upper bound for scoring a single pending transaction",
        alias="SCORING_TIMEOUT_SECONDS"
    )
    
    scoring_workers: int = Field(
        default=8,
        description="Number of concurrent scoring workers",
        alias="SCORING_WORKERS"
    )
    
    pending_queue_size: int = Field(
        default=1000,
        description="Bounded queue size for pending hashes (oldest dropped when full)",
        alias="PENDING_QUEUE_SIZE"
    )
    
    # ML settings
    confidence_service_url: Optional[str] = Field(
        default=None,
        description="Inference endpoint returning a confidence score; rule-based scoring if unset",
        alias="CONFIDENCE_SERVICE_URL"
    )
    
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore"  # Ignore extra fields from .env
    }
    
    @property
    def max_loan_wei(self) -> int:
        """Loan ceiling in wei."""
        return int(self.max_loan_amount_eth * WEI_PER_ETH)
    
    @property
    def min_profit_wei(self) -> int:
        """Profit floor in wei."""
        return int(self.min_profit_eth * WEI_PER_ETH)
    
    def missing_required(self) -> List[str]:
        """Return the environment names of mandatory settings that are unset."""
        required = {
            "ETHEREUM_RPC_HTTP": self.ethereum_rpc_http,
            "ETHEREUM_RPC_WSS": self.ethereum_rpc_wss,
            "WALLET_PRIVATE_KEY": self.wallet_private_key,
            "FLASHBOTS_RELAY_SIGNER_KEY": self.flashbots_relay_signer_key,
            "FLASH_LOAN_CONTRACT_ADDRESS": self.flash_loan_contract_address,
        }
        return [name for name, value in required.items() if not value]


# Global settings instance
settings = Settings()
