"""
Thought Recorder

Narrated progress entries shown in the UI while a wave runs. Entries are
append-only and never influence how a wave executes.
"""

import random
import string
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

THOUGHT_TYPES = ('thinking', 'planning', 'working', 'completed', 'insight', 'break')
MOODS = ('focused', 'excited', 'contemplative', 'satisfied', 'determined')

_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class ThoughtEntry:
    id: str
    timestamp: str
    type: str
    thought: str
    wave: Optional[int] = None
    wave_name: Optional[str] = None
    details: Optional[str] = None
    mood: Optional[str] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['waveName'] = data.pop('wave_name')
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'ThoughtEntry':
        return cls(
            id=data['id'],
            timestamp=data['timestamp'],
            type=data['type'],
            thought=data['thought'],
            wave=data.get('wave'),
            wave_name=data.get('waveName', data.get('wave_name')),
            details=data.get('details'),
            mood=data.get('mood'),
        )


def _new_id() -> str:
    suffix = ''.join(random.choices(_ID_ALPHABET, k=9))
    return f'{int(time.time() * 1000)}-{suffix}'


def add_thought(
    thoughts: List[ThoughtEntry],
    type: str,
    thought: str,
    wave: Optional[int] = None,
    wave_name: Optional[str] = None,
    details: Optional[str] = None,
    mood: Optional[str] = None,
) -> ThoughtEntry:
    """Append a new thought to the list and return it."""
    if type not in THOUGHT_TYPES:
        raise ValueError(f'Unknown thought type: {type}')
    if mood is not None and mood not in MOODS:
        raise ValueError(f'Unknown mood: {mood}')

    entry = ThoughtEntry(
        id=_new_id(),
        timestamp=datetime.now(timezone.utc).isoformat(),
        type=type,
        thought=thought,
        wave=wave,
        wave_name=wave_name,
        details=details,
        mood=mood,
    )
    thoughts.append(entry)
    return entry
