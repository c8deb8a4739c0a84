"""ToolRun: keeps installed tool agents running."""
