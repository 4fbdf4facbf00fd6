"""Application constants for burn-harness.

Centralizes magic numbers and configuration values to improve maintainability.
"""

# =============================================================================
# Units
# =============================================================================
DEFAULT_CPU_COUNT = 4  # When the logical core count is unknown
DEFAULT_GPU_COUNT = 1  # Most desktops expose a single GPU slot
MIN_UNIT_ID = 1

# =============================================================================
# CPU Load Task
# =============================================================================
CPU_MAX_INTENSITY = 10
CPU_MIN_INTENSITY = 1
CPU_DEFAULT_INTENSITY = 5

# Operations per intensity step between two cancellation polls
CPU_OPS_PER_INTENSITY = 1000

# =============================================================================
# GPU Load Task
# =============================================================================
GPU_MAX_COMPLEXITY = 100  # percent
GPU_MIN_COMPLEXITY = 1
GPU_DEFAULT_COMPLEXITY = 100

GPU_MAX_TEXTURES = 50
GPU_TEXTURE_BASE_SIZE = 256  # Sizes cycle through 256, 512, 768, 1024
GPU_TEXTURE_SIZE_STEPS = 4
GPU_BATCH_SIZE = 20  # Draw submissions per texture per frame

GPU_FRAME_YIELD_SECONDS = 0  # Explicit tick between frames

# =============================================================================
# Shared task limits
# =============================================================================
TASK_MIN_DURATION_SECONDS = 1
TASK_MAX_DURATION_SECONDS = 86_400  # 24 hours

# =============================================================================
# Process Management
# =============================================================================
PROCESS_TERMINATE_TIMEOUT = 1  # seconds
STOP_GRACE_PERIOD_SECONDS = 5  # cooperative stop before escalation

# Exit codes reported by the task wrapper
TASK_EXIT_OK = 0
TASK_EXIT_FAILED = 1

# =============================================================================
# Metrics
# =============================================================================
METRICS_PREFIX = "burn_harness"
