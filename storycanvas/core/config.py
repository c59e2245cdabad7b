"""
Application Configuration and Constants
=======================================

This module contains all global configuration values, constants, and defaults
used throughout the StoryCanvas application. It serves as a single source of
truth for:

- Player playback timing
- Asynchronous workflow polling budgets
- Storyboard grid layout sizes
- Image compression limits applied before upload
- Remote workflow registry (ids, inputs, async flags)

Note:
    All constants use UPPER_SNAKE_CASE naming convention. Modify these values to
    change application-wide behavior without touching business logic.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

# ============================================================================
# APPLICATION SETTINGS
# ============================================================================

APP_NAME = "StoryCanvas"

# ============================================================================
# PLAYER CONFIGURATION
# ============================================================================
# A player card replays its playlist as a slideshow, one frame per tick.

# Milliseconds each frame stays on screen
PLAYER_FRAME_RATE_MS = 2000

# Restart from frame 0 when the playlist is exhausted
PLAYER_LOOP = True

# ============================================================================
# ASYNC WORKFLOW POLLING
# ============================================================================
# Long-running remote jobs are tracked by one shared polling timer.

# Interval between two poll cycles of the task scheduler
POLL_INTERVAL_MS = 2000

# Poll cycles granted to a task before it times out (60 x 2s = 2 minutes)
DEFAULT_MAX_POLL_COUNT = 60

# Batch window for turning uploaded file ids into image URLs
IMAGE_URL_BATCH_DELAY_MS = 300

# ============================================================================
# CANVAS VIEWPORT
# ============================================================================

MIN_ZOOM = 0.2
MAX_ZOOM = 3.0
ZOOM_WHEEL_FACTOR = 1.1
ZOOM_IN_FACTOR = 1.2
ZOOM_OUT_FACTOR = 0.8

# ============================================================================
# STORYBOARD LAYOUT
# ============================================================================
# Image cards are laid out on a grid inside the storyboard; the player card
# sits to the right of the grid.

IMAGE_CARDS_PER_ROW = 4
IMAGE_CARD_WIDTH = 288
IMAGE_CARD_HEIGHT = 380
PLAYER_CARD_WIDTH = 576
PLAYER_CARD_HEIGHT = 436
CARD_PADDING = 20

# ============================================================================
# IMAGE COMPRESSION
# ============================================================================
# Images are shrunk before upload to reduce transfer size and time.

COMPRESSION_MAX_SIZE_MB = 1.0
COMPRESSION_MAX_WIDTH_OR_HEIGHT = 1920
COMPRESSION_START_QUALITY = 90
COMPRESSION_MIN_QUALITY = 30

# Target frame for the 16:9 crop helper
CROP_TARGET_SIZE: Tuple[int, int] = (1920, 1080)

# ============================================================================
# NETWORK CONFIGURATION
# ============================================================================

API_BASE_URL = os.environ.get("STORYCANVAS_API_BASE_URL", "https://api.coze.cn")
API_TOKEN_ENV = "STORYCANVAS_API_TOKEN"

# Maximum time to wait for network responses before timing out
NETWORK_TIMEOUT_SECONDS = 30

# Uploads carry image payloads and get a more generous limit
UPLOAD_TIMEOUT_SECONDS = 120

# ============================================================================
# PERSISTENCE
# ============================================================================

STATE_PATH = Path(
    os.environ.get("STORYCANVAS_STATE_PATH", str(Path.home() / ".storycanvas_state.json"))
)

# ============================================================================
# REMOTE WORKFLOW REGISTRY
# ============================================================================


@dataclass(frozen=True)
class WorkflowDefinition:
    """Static description of one remote workflow."""
    id: str
    name: str
    description: str = ""
    is_async: bool = False
    required_inputs: Tuple[str, ...] = ()
    system_prompt: Optional[str] = None


WORKFLOWS: Dict[str, WorkflowDefinition] = {
    # Splits a long script into shots. Runs asynchronously: the call returns an
    # execute id and the result is fetched by polling.
    "TEXT_TO_VIDEO_SHOTS": WorkflowDefinition(
        id="7565811541141454902",
        name="Text split",
        description="Split a long text into storyboard shots",
        is_async=True,
        required_inputs=("prompt",),
    ),
    "GET_LIST": WorkflowDefinition(
        id="7565826014405558307",
        name="Get list",
        description="List shots, optionally for one book id or grouped by book id",
    ),
    # Renders a video from shot images. Asynchronous, like the text split.
    "GENERATE_VIDEO": WorkflowDefinition(
        id="7565802510557544457",
        name="Generate video",
        description="Generate a video from images and text",
        is_async=True,
        required_inputs=("image", "book_id", "id"),
    ),
    "IMAGE_FILEID_TO_URL": WorkflowDefinition(
        id="7565854488088903686",
        name="Image file id to url",
        description="Resolve uploaded image file ids to URLs",
        required_inputs=("images",),
    ),
    "DELETE_DATA": WorkflowDefinition(
        id="7565935669340602414",
        name="Delete data",
        description="Delete one shot (id) or a whole project (book_id)",
    ),
}

# Reverse mapping: workflow id -> registry key
WORKFLOW_KEYS_BY_ID = {wf.id: key for key, wf in WORKFLOWS.items()}
