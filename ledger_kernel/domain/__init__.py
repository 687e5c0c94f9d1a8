"""Pure domain types: clock, messages, documents, periods, posting DTOs."""
