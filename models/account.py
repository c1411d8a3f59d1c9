from dataclasses import dataclass


@dataclass
class Account:
    id: str
    name: str  # display name, e.g., "Checking"
    currency: str = "USD"

    def to_dict(self) -> dict:
        """Convert account to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "currency": self.currency,
        }
