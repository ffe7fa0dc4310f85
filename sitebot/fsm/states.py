START = "start"
AWAITING_PROMPT = "awaiting_prompt"
VALIDATING_PROMPT = "validating_prompt"
PROCESSING = "processing"
COMPLETED = "completed"
ERROR = "error"

VALID_TRANSITIONS: dict[str, tuple[str, ...]] = {
    START: (AWAITING_PROMPT,),
    AWAITING_PROMPT: (VALIDATING_PROMPT, START),
    VALIDATING_PROMPT: (PROCESSING, AWAITING_PROMPT),
    PROCESSING: (COMPLETED, ERROR),
    COMPLETED: (START, AWAITING_PROMPT),
    ERROR: (START, AWAITING_PROMPT),
}

ACTION_CREATE = "create"
ACTION_EDIT = "edit"
ACTION_NONE = "none"

ACTIONS = (ACTION_CREATE, ACTION_EDIT, ACTION_NONE)
