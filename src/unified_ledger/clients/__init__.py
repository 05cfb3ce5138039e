from unified_ledger.clients.base import BankDataClient, TokenProvider, TradingClient

__all__ = ["BankDataClient", "TokenProvider", "TradingClient"]
