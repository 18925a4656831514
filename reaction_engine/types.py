from enum import Enum
from typing import NamedTuple


class ReactionKind(str, Enum):
    LIKE = "like"
    LOVE = "love"
    LAUGH = "laugh"
    SAD = "sad"
    FIRE = "fire"


class TargetType(str, Enum):
    POST = "post"
    COMMENT = "comment"


class TargetRef(NamedTuple):
    type: TargetType
    id: int


# tie-break order for equal counts
KIND_ORDER = {kind: index for index, kind in enumerate(ReactionKind)}
