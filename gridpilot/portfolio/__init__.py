from gridpilot.portfolio.client import PortfolioClient, is_valid_wallet_address

__all__ = ["PortfolioClient", "is_valid_wallet_address"]
