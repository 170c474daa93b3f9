"""Localized phrases spoken to callers (and used in follow-up notifications)."""

from __future__ import annotations

FALLBACK_LANGUAGE = "en"

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "rejected_unauthorized": "This number is not authorized to access this service.",
        "rejected_rate_limited": "Too many calls. Please try again later.",
        "pin_prompt": "Welcome. Please enter your {digits} digit PIN.",
        "pin_incorrect": (
            "Incorrect PIN. You have {remaining} attempts remaining. Please try again."
        ),
        "pin_exhausted": "Too many failed attempts. Goodbye.",
        "no_input": "No input received. Goodbye.",
        "session_error": "Session error. Goodbye.",
        "internal_error": "Sorry, something went wrong. Goodbye.",
        "welcome": "Welcome {name}. You are now connected. How can I help you?",
        "didnt_hear": "I didn't hear anything. Please say that again.",
        "farewell": "Goodbye {name}. Talk to you soon.",
        "task_queued": "Got it. I'll work on that and send you the result shortly. Anything else?",
        "task_failed": "Sorry, I couldn't save that request. Please try again later.",
        "voice_note_prompt": (
            "Please record your voice note after the tone. Press the pound key when you are done."
        ),
        "voice_note_saved": "Your voice note has been saved. Goodbye.",
        "voice_note_failed": "Sorry, I couldn't save your voice note. Please try again later. Goodbye.",
        "delay_apology": "Sorry for the wait.",
        "follow_up": "That needs a little more time. I'll send you the answer shortly.",
        "llm_failed": "Sorry, I couldn't process that right now. Please try again.",
        "transcription_failed": "Sorry, I couldn't understand the audio. Please try again.",
        "followup_header": 'Response to your voice query:\n"{message}"\n\n',
        "language_name": "English",
    },
    "es": {
        "rejected_unauthorized": "Este número no está autorizado para usar este servicio.",
        "rejected_rate_limited": "Demasiadas llamadas. Por favor intente más tarde.",
        "pin_prompt": "Bienvenido. Por favor ingrese su PIN de {digits} dígitos.",
        "pin_incorrect": (
            "PIN incorrecto. Le quedan {remaining} intentos. Por favor intente de nuevo."
        ),
        "pin_exhausted": "Demasiados intentos fallidos. Adiós.",
        "no_input": "No se recibió ninguna respuesta. Adiós.",
        "session_error": "Error de sesión. Adiós.",
        "internal_error": "Lo siento, algo salió mal. Adiós.",
        "welcome": "Bienvenido {name}. Ya está conectado. ¿En qué le puedo ayudar?",
        "didnt_hear": "No escuché nada. Por favor repítalo.",
        "farewell": "Adiós {name}. Hasta pronto.",
        "task_queued": "Entendido. Trabajaré en eso y le enviaré el resultado pronto. ¿Algo más?",
        "task_failed": "Lo siento, no pude guardar esa solicitud. Intente más tarde.",
        "voice_note_prompt": (
            "Grabe su nota de voz después del tono. Presione la tecla numeral al terminar."
        ),
        "voice_note_saved": "Su nota de voz ha sido guardada. Adiós.",
        "voice_note_failed": "Lo siento, no pude guardar su nota de voz. Intente más tarde. Adiós.",
        "delay_apology": "Disculpe la espera.",
        "follow_up": "Eso requiere un poco más de tiempo. Le enviaré la respuesta en breve.",
        "llm_failed": "Lo siento, no pude procesar eso ahora. Por favor intente de nuevo.",
        "transcription_failed": "Lo siento, no entendí el audio. Por favor intente de nuevo.",
        "followup_header": 'Respuesta a tu pregunta de voz:\n"{message}"\n\n',
        "language_name": "Spanish",
    },
}


def t(language: str | None, key: str, **params: object) -> str:
    """Return the phrase ``key`` in ``language``, falling back to English."""

    catalog = MESSAGES.get(language or FALLBACK_LANGUAGE) or MESSAGES[FALLBACK_LANGUAGE]
    template = catalog.get(key) or MESSAGES[FALLBACK_LANGUAGE][key]
    return template.format(**params) if params else template
