from dataclasses import dataclass


@dataclass(frozen=True)
class NodeSoftware:
    """
    Value Object identifying one software on one node.
    """
    node: str
    software: str

    def __post_init__(self) -> None:
        if not self.node:
            raise ValueError("Node cannot be empty")
        if not self.software:
            raise ValueError("Software cannot be empty")

    def __str__(self) -> str:
        return f"{self.software}@{self.node}"
