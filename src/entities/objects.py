"""
Game objects and their states.

An object is a named set of states; each state may show an image or an
animation and may play a sound. On the wire a state's visual is the pair
(visualType, visualId); in memory it is one of the Visual variants below so
image ids and animation ids cannot be mixed up.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from core.clock import new_id, utc_timestamp
from core.errors import LastStateError, NotFound, ValidationError


@dataclass(frozen=True)
class ImageVisual:
    image_id: str

    kind = "image"

    @property
    def ref_id(self) -> str:
        return self.image_id


@dataclass(frozen=True)
class AnimationVisual:
    animation_id: str

    kind = "animation"

    @property
    def ref_id(self) -> str:
        return self.animation_id


Visual = Union[ImageVisual, AnimationVisual]


def visual_from_wire(visual_type: Optional[str], visual_id: Optional[str]) -> Optional[Visual]:
    if not visual_type or not visual_id:
        return None
    if visual_type == "image":
        return ImageVisual(visual_id)
    if visual_type == "animation":
        return AnimationVisual(visual_id)
    raise ValidationError(f"Unknown visual type {visual_type!r}")


def visual_to_wire(visual: Optional[Visual]) -> Tuple[Optional[str], Optional[str]]:
    if visual is None:
        return None, None
    return visual.kind, visual.ref_id


@dataclass
class ObjectState:
    id: str
    name: str
    visual: Optional[Visual] = None
    sound_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObjectState":
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            visual=visual_from_wire(data.get("visualType"), data.get("visualId")),
            sound_id=data.get("soundId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        visual_type, visual_id = visual_to_wire(self.visual)
        return {
            "id": self.id,
            "name": self.name,
            "visualType": visual_type,
            "visualId": visual_id,
            "soundId": self.sound_id,
        }


@dataclass
class GameObject:
    id: str
    name: str
    states: List[ObjectState] = field(default_factory=list)
    created_at: str = field(default_factory=utc_timestamp)

    def state(self, state_id: str) -> ObjectState:
        for st in self.states:
            if st.id == state_id:
                return st
        raise NotFound(f"State {state_id} not found in object {self.id}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameObject":
        if "id" not in data:
            raise ValidationError("Object record is missing 'id'")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            states=[ObjectState.from_dict(s) for s in data.get("states", [])],
            created_at=data.get("createdAt", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "states": [st.to_dict() for st in self.states],
            "createdAt": self.created_at,
        }


def _clean_name(name: Optional[str], what: str) -> str:
    if not name or not name.strip():
        raise ValidationError(f"{what} name is required")
    return name.strip()


def create_object(name: str) -> GameObject:
    obj = GameObject(new_id(), _clean_name(name, "Object"))
    obj.states.append(ObjectState(new_id(), "default"))
    return obj


def rename_object(obj: GameObject, name: str):
    obj.name = _clean_name(name, "Object")


def add_state(obj: GameObject, name: str) -> ObjectState:
    state = ObjectState(new_id(), _clean_name(name, "State"))
    obj.states.append(state)
    return state


def rename_state(obj: GameObject, state_id: str, name: str) -> ObjectState:
    state = obj.state(state_id)
    state.name = _clean_name(name, "State")
    return state


def set_state_visual(obj: GameObject, state_id: str, visual: Optional[Visual]) -> ObjectState:
    state = obj.state(state_id)
    state.visual = visual
    return state


def set_state_sound(obj: GameObject, state_id: str, sound_id: Optional[str]) -> ObjectState:
    state = obj.state(state_id)
    state.sound_id = sound_id or None
    return state


def delete_state(obj: GameObject, state_id: str) -> ObjectState:
    state = obj.state(state_id)
    if len(obj.states) <= 1:
        raise LastStateError(f"Object {obj.id} must keep at least one state")
    obj.states.remove(state)
    return state
