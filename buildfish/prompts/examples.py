"""Example prompts shown in the viewer."""

EXAMPLE_PROMPTS = [
    "A simple gear mechanism with 2 interlocking gears",
    "A basic chair design with a seat, backrest, and four legs",
    "A coffee mug with a handle and saucer",
    "A simple robot arm with 3 joints and a gripper",
]


def short_label(prompt: str, limit: int = 30) -> str:
    """Button label for an example prompt, truncated with an ellipsis."""
    return prompt[:limit] + "..." if len(prompt) > limit else prompt
