"""Prompt helpers for live conversations and vision descriptions."""

from __future__ import annotations

DEFAULT_LANGUAGE = "en-US"

_LIVE_INSTRUCTIONS = {
	"zh-CN": (
		"你是一个通过智能眼镜陪伴用户的实时 AI 助手。你能听到用户说话，也能看到眼镜摄像头拍到的画面。"
		"请用简洁、自然的口语回答，优先描述与用户问题相关的画面内容。请始终使用中文回答。"
	),
	"en-US": (
		"You are a real-time AI assistant speaking with the user through smart glasses. "
		"You can hear the user and see what the glasses camera sees. "
		"Answer briefly in natural spoken language and describe the view when it helps the user. "
		"Always respond in English."
	),
	"ja-JP": (
		"あなたはスマートグラスを通じてユーザーと会話するリアルタイム AI アシスタントです。"
		"ユーザーの声を聞き、メガネのカメラに映るものを見ることができます。"
		"簡潔で自然な話し言葉で答えてください。必ず日本語で応答してください。"
	),
	"ko-KR": (
		"당신은 스마트 안경을 통해 사용자와 대화하는 실시간 AI 도우미입니다. "
		"사용자의 말을 듣고 안경 카메라에 보이는 장면을 볼 수 있습니다. "
		"간결하고 자연스러운 구어체로 답하세요. 항상 한국어로 응답하세요."
	),
	"es-ES": (
		"Eres un asistente de IA en tiempo real que habla con el usuario a través de gafas inteligentes. "
		"Puedes oír al usuario y ver lo que capta la cámara de las gafas. "
		"Responde de forma breve y natural. Responde siempre en español."
	),
	"fr-FR": (
		"Tu es un assistant IA en temps réel qui parle avec l'utilisateur via des lunettes connectées. "
		"Tu entends l'utilisateur et tu vois ce que filme la caméra des lunettes. "
		"Réponds de façon brève et naturelle. Réponds toujours en français."
	),
}

_QUICK_VISION_PROMPTS = {
	"zh-CN": "请用一两句话描述这张图片中最重要的内容，适合直接朗读给用户听。",
	"en-US": "Describe the most important thing in this image in one or two sentences, suitable for reading aloud.",
	"ja-JP": "この画像で最も重要なものを、読み上げに適した一、二文で説明してください。",
	"ko-KR": "이 이미지에서 가장 중요한 것을 소리 내어 읽기 좋게 한두 문장으로 설명하세요.",
	"es-ES": "Describe lo más importante de esta imagen en una o dos frases, apto para leer en voz alta.",
	"fr-FR": "Décris l'élément le plus important de cette image en une ou deux phrases, à lire à voix haute.",
}


def live_instructions(language: str | None) -> str:
	"""Return the realtime system instructions for an output language."""
	return _LIVE_INSTRUCTIONS.get(language or "", _LIVE_INSTRUCTIONS[DEFAULT_LANGUAGE])


def quick_vision_prompt(language: str | None) -> str:
	"""Return the prompt used for one-shot quick recognition."""
	return _QUICK_VISION_PROMPTS.get(language or "", _QUICK_VISION_PROMPTS[DEFAULT_LANGUAGE])


def vision_context_prompt() -> str:
	"""Return the prompt used to turn a camera frame into conversation context."""
	return "Describe what you see in this image briefly."


VISION_QUESTION_KEYWORDS = (
	"what do you see",
	"what am i looking at",
	"what is this",
	"what's this",
	"describe this",
	"describe what you see",
	"tell me what you see",
	"what can you see",
	"look at this",
	"what am i seeing",
	"can you see",
	"do you see",
	"看到什么",
	"这是什么",
	"描述一下",
)


def asks_about_view(transcript: str) -> bool:
	"""True when a user utterance asks about what the camera sees."""
	lowered = transcript.lower()
	return any(keyword in lowered for keyword in VISION_QUESTION_KEYWORDS)
