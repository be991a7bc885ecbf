"""All magic numbers and configuration constants."""

REPEAT_DELAY_MS = 500               # ms pause before a repeat pass restarts at (0, 0)
DEFAULT_PITCH = 1.0                 # neutral pitch; 0.0–2.0
DEFAULT_VOLUME = 1.0                # full volume; 0.0–1.0
PITCH_HZ_PER_UNIT = 50              # edge-tts pitch offset in Hz per unit away from 1.0
TTS_RATE = "+0%"                    # speech rate relative to the voice default
TTS_RETRY_COUNT = 3                 # max retries per synthesized phrase
TTS_RETRY_BASE_DELAY = 1.0          # seconds, base delay for exponential backoff
PLAYER_COMMAND = ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"]
CHARS_PER_PAGE_ESTIMATE = 2000      # report progress: rough chars per page
RECENT_IMPORT_DAYS = 7              # report summary window
SUPPORTED_EXTENSIONS = (".txt", ".pdf", ".docx", ".epub")
FLAG_SWATCHES = {
    "Red": "#FF0000",
    "Green": "#008000",
    "Blue": "#0000FF",
    "Yellow": "#FFFF00",
    "AppBlue": "#3F8CFF",
}
DEFAULT_FLAG_COLOR = FLAG_SWATCHES["AppBlue"]
DATA_DIR = "library"
SETTINGS_FILE = "settings.json"
FLAGS_FILE = "flags.json"
DOCUMENTS_DIR = "documents"
VERSION = "0.1.0"
