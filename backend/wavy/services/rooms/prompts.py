import random
from typing import List, Optional, Sequence

TYPING_TEXTS = [
    'The quick brown fox jumps over the lazy dog. Keep your posture relaxed and your wrists floating gently above the keys as you type.',
    'Collaboration feels effortless when every participant shares the same canvas. Think out loud, sketch the idea, and refine together in real time.',
    'Typing smoothly is less about raw speed and more about rhythm. Focus on accuracy first; the pace will naturally increase once the motion feels fluid.',
    'A calm workspace, a focused playlist, and a blank board are often all you need to spark the next big concept. Invite teammates and start experimenting.',
    'Practice sessions become more fun when a friendly leaderboard keeps everyone motivated. Celebrate small wins and keep iterating on your craft.',
]

FALLBACK_TEXT = 'Typing is better with friends. Add more sample texts to keep things fresh!'


def pick_random_prompt(pool: Optional[Sequence[str]] = None) -> str:
    pool = TYPING_TEXTS if pool is None else pool
    if not pool:
        return FALLBACK_TEXT
    return random.choice(pool)


def build_rounds(candidates: Optional[Sequence[str]], count: int, pool: Optional[Sequence[str]] = None) -> List[str]:
    """Pad or truncate `candidates` to exactly `count` prompts.

    Missing rounds are filled from `pool` (the built-in texts by default),
    then from the hardcoded sentence when the pool is empty too.
    """
    pool = TYPING_TEXTS if pool is None else pool
    rounds = [text for text in (candidates or []) if isinstance(text, str)]
    if not rounds:
        rounds = list(pool)
    if not rounds:
        rounds = [FALLBACK_TEXT]
    while len(rounds) < count:
        rounds.append(pick_random_prompt(pool) if pool else rounds[-1])
    return rounds[:max(1, count)]


def pick_round_set(count: int, pool: Optional[Sequence[str]] = None) -> List[str]:
    """Return `count` prompts in random order; never empty."""
    pool = TYPING_TEXTS if pool is None else pool
    shuffled = random.sample(list(pool), k=len(pool)) if pool else []
    return build_rounds(shuffled, count, pool)
