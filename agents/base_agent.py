class BaseAgent:
    """Identity shared by every market participant."""

    def __init__(self, unique_id: int, name: str) -> None:
        self.unique_id = unique_id
        self.name = name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.unique_id!r}, {self.name!r})"
