"""
Configuration constants for the segmentation evaluation suite.
All thresholds and configurable parameters are centralized here.
"""

# ==========================================
# Label Settings
# ==========================================
BACKGROUND_LABEL = 0              # Reserved label, never a foreground region

# ==========================================
# Tolerant Edit Distance (TED)
# ==========================================

# Boundary tolerance in physical units (same unit as the volume resolution)
TED_TOLERANCE = 10.0

# Minimum tolerant overlap, as a fraction of the region size, for a partner
# to count towards a split or merge (the dominant partner always counts).
# 0 means one voxel beyond tolerance: displaced boundaries are already
# absorbed by the tolerance, so anything left is a real piece.
TED_MIN_OVERLAP_FRACTION = 0.0

# Report false positives / false negatives against the background labels
TED_HANDLE_BACKGROUND = False

# Parallel tolerance-band computation (one task per ground truth region)
TED_MAX_WORKERS = 4

# ==========================================
# Processing Settings
# ==========================================

# Slices per slab for contingency accumulation (bounds peak memory)
CONTINGENCY_SLAB_DEPTH = 16

# ==========================================
# Error Report Defaults
# ==========================================
REPORT_TED = True
REPORT_DETECTION_OVERLAP = True
REPORT_VOI = False
REPORT_RAND = False
REPORT_IGNORE_BACKGROUND = False
REPORT_GROW_SLICES = False

# Float formatting for report values
REPORT_FLOAT_FORMAT = "{:.6f}"

# ==========================================
# Ground Truth Extraction
# ==========================================
GT_EXTRACT_FOREGROUND_DARK = True     # Foreground is the dark phase of the mask
GT_EXTRACT_PER_SLICE = True           # 4-connected per slice, else 6-connected 3D

# ==========================================
# File Naming
# ==========================================
IMAGE_STACK_EXTENSIONS = ('.tif', '.tiff', '.png')
CORRECTED_DIR_PREFIX = "corrected_"
TED_ERROR_FILE_TEMPLATE = "{stem}.{kind}.data"
EXPORTED_GROUND_TRUTH_DIR = "groundtruth"
