"""
Graph Node Definitions for fv1block.

This module contains the block-diagram data model: blocks, the
connections between their ports, and the graph document that holds
them. Instances are treated as immutable snapshots by the compiler.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..utils.exceptions import GraphValidationError
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Endpoint:
    """One end of a connection: a port on a block."""

    block_id: str
    port_id: str

    @classmethod
    def from_dict(cls, data: Any, where: str) -> Endpoint:
        if not isinstance(data, dict):
            raise GraphValidationError(f"{where} must be an object with blockId and portId")
        block_id = data.get("blockId", data.get("block_id"))
        port_id = data.get("portId", data.get("port_id"))
        if not block_id or not port_id:
            raise GraphValidationError(f"{where} is missing blockId or portId")
        return cls(str(block_id), str(port_id))

    def to_dict(self) -> Dict[str, str]:
        return {"blockId": self.block_id, "portId": self.port_id}

    def __str__(self) -> str:
        return f"{self.block_id}.{self.port_id}"


@dataclass(frozen=True)
class Connection:
    """A directed edge from an output port to an input port."""

    id: str
    source: Endpoint
    destination: Endpoint

    @classmethod
    def from_dict(cls, data: Any, index: int) -> Connection:
        if not isinstance(data, dict):
            raise GraphValidationError(f"connections[{index}] must be an object")
        conn_id = str(data.get("id") or f"c{index}")
        source = Endpoint.from_dict(data.get("from"), f"connections[{index}].from")
        destination = Endpoint.from_dict(data.get("to"), f"connections[{index}].to")
        return cls(conn_id, source, destination)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "from": self.source.to_dict(), "to": self.destination.to_dict()}


@dataclass(frozen=True)
class Block:
    """
    A block instance placed in the graph.

    Attributes:
        id: Unique block id within the graph
        type: Registered block type id, e.g. ``input.adc``
        parameters: Parameter id to value mapping; missing ids take the
            definition default
    """

    id: str
    type: str
    parameters: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Any, index: int) -> Block:
        if not isinstance(data, dict):
            raise GraphValidationError(f"blocks[{index}] must be an object")
        block_id = data.get("id")
        block_type = data.get("type")
        if not block_id or not block_type:
            raise GraphValidationError(f"blocks[{index}] is missing id or type")
        parameters = data.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise GraphValidationError(f"blocks[{index}].parameters must be an object", block_id=str(block_id))
        return cls(str(block_id), str(block_type), dict(parameters))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type, "parameters": dict(self.parameters)}


@dataclass(frozen=True)
class GraphMetadata:
    """Descriptive metadata rendered into the program banner."""

    name: str = "Untitled"
    author: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> GraphMetadata:
        data = data or {}
        return cls(
            name=str(data.get("name", "Untitled")),
            author=str(data.get("author", "")),
            description=str(data.get("description", "")),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "author": self.author, "description": self.description}


@dataclass(frozen=True)
class BlockGraph:
    """
    A block diagram document.

    Blocks and connections keep document order, which is also the
    tie-breaking order used by the scheduler.
    """

    blocks: Tuple[Block, ...] = ()
    connections: Tuple[Connection, ...] = ()
    metadata: GraphMetadata = field(default_factory=GraphMetadata)
    version: str = "1.0"

    def __post_init__(self):
        object.__setattr__(self, "blocks", tuple(self.blocks))
        object.__setattr__(self, "connections", tuple(self.connections))

    @classmethod
    def from_dict(cls, data: Any) -> BlockGraph:
        """
        Build a graph from its document form.

        Args:
            data: Mapping with ``metadata``, ``blocks`` and ``connections``

        Returns:
            BlockGraph instance

        Raises:
            GraphValidationError: If the document shape is malformed
        """
        if not isinstance(data, dict):
            raise GraphValidationError("Graph document must be an object")
        raw_blocks = data.get("blocks") or []
        raw_connections = data.get("connections") or []
        if not isinstance(raw_blocks, list) or not isinstance(raw_connections, list):
            raise GraphValidationError("Graph blocks and connections must be lists")

        blocks = [Block.from_dict(item, i) for i, item in enumerate(raw_blocks)]
        connections = [Connection.from_dict(item, i) for i, item in enumerate(raw_connections)]

        seen = set()
        for block in blocks:
            if block.id in seen:
                raise GraphValidationError(f"Duplicate block id '{block.id}'", block_id=block.id)
            seen.add(block.id)

        return cls(
            blocks=tuple(blocks),
            connections=tuple(connections),
            metadata=GraphMetadata.from_dict(data.get("metadata")),
            version=str(data.get("version", "1.0")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "metadata": self.metadata.to_dict(),
            "blocks": [b.to_dict() for b in self.blocks],
            "connections": [c.to_dict() for c in self.connections],
        }

    def get_block(self, block_id: str) -> Optional[Block]:
        for block in self.blocks:
            if block.id == block_id:
                return block
        return None

    def incoming(self, block_id: str) -> List[Connection]:
        """Connections whose destination is the given block."""
        return [c for c in self.connections if c.destination.block_id == block_id]

    def outgoing(self, block_id: str) -> List[Connection]:
        """Connections whose source is the given block."""
        return [c for c in self.connections if c.source.block_id == block_id]

    def driver_of(self, block_id: str, port_id: str) -> Optional[Endpoint]:
        """Return the output endpoint driving an input port, if connected."""
        for conn in self.connections:
            if conn.destination.block_id == block_id and conn.destination.port_id == port_id:
                return conn.source
        return None

    def is_connected(self, block_id: str, port_id: str) -> bool:
        """True when the port is an end of any connection."""
        return any(
            (c.destination.block_id == block_id and c.destination.port_id == port_id)
            or (c.source.block_id == block_id and c.source.port_id == port_id)
            for c in self.connections
        )


def load_graph(path: str) -> BlockGraph:
    """
    Load a graph document from a JSON or YAML file.

    Args:
        path: File path; ``.json`` is parsed as JSON, anything else as YAML

    Returns:
        BlockGraph instance
    """
    file_path = Path(path)
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            if file_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise GraphValidationError(f"Cannot read graph file {file_path}: {e}")

    graph = BlockGraph.from_dict(data)
    logger.debug(f"Loaded graph '{graph.metadata.name}' from {file_path}")
    return graph
