"""
Calibration constants for frame scoring, page detection and chapter detection.

These values are empirically tuned. Scores are only comparable across runs
when they stay exactly as written here.
"""

# Frame quality scoring
SHARPNESS_NORMALIZER = 1000.0
SHARPNESS_CAP = 5.0
MID_GRAY = 128.0
BRIGHTNESS_PENALTY_WEIGHT = 0.3
CONTRAST_BONUS_WEIGHT = 0.2

# OCR text coverage
CONFIDENCE_DIVISOR = 200.0

# Page number detection
PAGE_SCAN_LINES = 15
PAGE_NUMBER_MIN = 1
PAGE_NUMBER_MAX = 200
PAGE_SHORT_LINE = 15
PAGE_LEADING_LINE = 30

# Chapter detection
WORD_RATIO_THRESHOLD = 0.6
TITLE_MIN_WORDS = 2
TITLE_MIN_WORD_LETTERS = 3
TITLE_LONG_WORD_LETTERS = 8
TITLE_MIN_CHARS = 8
CHAPTER_NUMBER_MAX = 99
NOISY_CHAPTER_NUMBER_MAX = 49
NOISY_TITLE_LOOKAHEAD = 2

PAGE_MARKER = "---PAGE---"
PAGE_SEPARATOR = f"\n\n{PAGE_MARKER}\n\n"

# Photo archives: fraction of the width kept when cropping off the facing page
ARCHIVE_CROP_RATIO = 0.85
