"""Click commands for the formulary CLI."""
