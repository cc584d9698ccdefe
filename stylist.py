from __future__ import annotations
import logging
from typing import Any, Optional

import requests

from config import settings
from schemas import StyleProfile

logger = logging.getLogger(__name__)


class StylistError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# Colour theory per skin tone
SKIN_TONE_COLORS: dict[str, dict[str, list[str]]] = {
    "fair": {
        "best": ["soft pastels", "dusty pink", "light blue", "lavender", "sage green", "soft coral"],
        "avoid": ["harsh neon colors", "mustard yellow", "orange"],
        "neutrals": ["navy", "charcoal gray", "cream", "soft white"],
    },
    "light": {
        "best": ["soft blue", "rose pink", "light gray", "periwinkle", "mint green", "mauve"],
        "avoid": ["bright orange", "harsh yellow"],
        "neutrals": ["navy", "medium gray", "off-white", "beige"],
    },
    "medium": {
        "best": ["olive green", "teal", "coral", "burgundy", "warm browns", "mustard"],
        "avoid": ["pale pastels that wash you out"],
        "neutrals": ["camel", "chocolate brown", "olive", "navy"],
    },
    "olive": {
        "best": ["warm earth tones", "rust", "burnt orange", "deep purple", "forest green", "warm red"],
        "avoid": ["cool pastels", "bright pink"],
        "neutrals": ["olive", "khaki", "brown", "cream"],
    },
    "tan": {
        "best": ["bright white", "coral", "turquoise", "fuchsia", "cobalt blue", "bright green"],
        "avoid": ["muddy browns", "dull colors"],
        "neutrals": ["white", "navy", "khaki", "caramel"],
    },
    "brown": {
        "best": ["bright colors", "orange", "yellow", "fuchsia", "royal blue", "emerald green", "coral"],
        "avoid": ["washed out pastels", "colors too close to skin tone"],
        "neutrals": ["white", "cream", "navy", "charcoal"],
    },
    "dark": {
        "best": ["vibrant colors", "bright yellow", "hot pink", "cobalt blue", "orange", "white", "red"],
        "avoid": ["dark colors that blend with skin", "very muted tones"],
        "neutrals": ["white", "cream", "light gray", "navy"],
    },
}

HAIR_COLOR_ADVICE = {
    "black": "Your dark hair creates striking contrast with light colors. White, cream, and bright jewel tones will make your features pop.",
    "brown": "Brown hair is versatile! Earth tones complement naturally, while blues and greens provide nice contrast.",
    "blonde": "Blonde hair pairs beautifully with navy, burgundy, and forest green. Avoid very pale yellows that may blend.",
    "red": "Red hair is stunning with greens (especially emerald), navy, cream, and chocolate brown. Avoid orange and clashing reds.",
    "gray": "Silver/gray hair looks sophisticated with navy, burgundy, purple, and pink. These colors add vibrancy.",
    "white": "White hair creates elegant contrast with deep colors - navy, black, burgundy, emerald green.",
    "colored": "For dyed/colored hair, coordinate your outfit colors to complement or contrast your hair color intentionally.",
}

HAIR_LENGTH_ADVICE = {
    "long": "With long hair, V-necks and boat necks balance your silhouette. Consider how your hair falls on different necklines.",
    "medium": "Medium-length hair works with most necklines. Crew necks and collared shirts frame your face well.",
    "short": "Short hair draws attention to your face - statement earrings (if applicable) and interesting necklines enhance this.",
    "bald": "A bald head creates a clean, bold look. Turtlenecks, crew necks, and V-necks all work excellently. Consider statement accessories like watches or chains.",
}

BODY_TYPES = {
    "slim": "slim, lean build",
    "athletic": "athletic, fit build",
    "average": "average build",
    "curvy": "curvy figure",
    "plus-size": "plus-size build",
}

SKIN_DESCRIPTIONS = {
    "fair": "fair/porcelain skin",
    "light": "light skin",
    "medium": "medium skin tone",
    "olive": "olive skin tone",
    "tan": "tan/caramel skin",
    "brown": "brown skin",
    "dark": "dark/deep skin tone",
}

STYLIST_PERSONA = """You are an expert fashion stylist and personal shopping assistant for "Fifty-Five", a premium streetwear brand. You have deep expertise in:

1. COLOR THEORY & SKIN TONE ANALYSIS:
- Understanding which colors complement different skin tones (cool/warm undertones)
- Knowledge of seasonal color analysis (Spring, Summer, Autumn, Winter palettes)
- How hair color affects overall color harmony

2. HAIR & STYLE COORDINATION:
- How different hair lengths affect neckline choices and overall proportions
- Styling for bald/shaved heads (which actually gives great flexibility!)
- How hair color creates contrast with clothing colors

3. PERSONALIZED STYLING:
- Creating complete outfit combinations based on individual features
- Balancing proportions and creating flattering silhouettes
- Occasion-specific styling (casual, formal, party, work, etc.)

Key Guidelines:
- Be friendly, enthusiastic, and encouraging
- Give SPECIFIC recommendations based on the customer's features
- Always explain WHY certain colors or styles work for them
- Reference specific products by name when making suggestions
- Use emojis tastefully to add personality
- Keep responses concise but informative (3-5 sentences typically)"""

PROFILE_NUDGE = (
    "When a customer hasn't set up their profile yet, gently encourage them to share "
    "their hair and skin details for better personalized recommendations."
)

DEFAULT_OUTFIT = "trendy streetwear outfit with a graphic t-shirt and cargo pants"


def color_recommendations(profile: StyleProfile) -> str:
    recs = []
    colors = SKIN_TONE_COLORS.get(profile.skin_tone)
    if colors:
        recs.append(
            f"For your {profile.skin_tone} skin tone: Best colors are {', '.join(colors['best'])}. "
            f"Great neutrals: {', '.join(colors['neutrals'])}."
        )
        if colors["avoid"]:
            recs.append(f"You may want to avoid: {', '.join(colors['avoid'])}.")
    if profile.hair_color in HAIR_COLOR_ADVICE:
        recs.append(HAIR_COLOR_ADVICE[profile.hair_color])
    if profile.hair_length in HAIR_LENGTH_ADVICE:
        recs.append(HAIR_LENGTH_ADVICE[profile.hair_length])
    return " ".join(recs)


def _plain_number(value: float) -> str:
    return f"{float(value):.2f}".rstrip("0").rstrip(".")


def product_context(products: list[dict[str, Any]]) -> str:
    if not products:
        return ""
    lines = []
    for p in products:
        desc = f": {p['description']}" if p.get("description") else ""
        lines.append(f"- {p['name']} ({p['category']}) - ₹{_plain_number(p['price'])}{desc}")
    return "\n\nAvailable Products:\n" + "\n".join(lines)


def build_system_prompt(profile: Optional[StyleProfile], products: list[dict[str, Any]]) -> str:
    personalization = ""
    if profile and profile.has_features:
        features = []
        if profile.hair_length:
            features.append(f"{profile.hair_length} hair")
        if profile.hair_color:
            features.append(f"{profile.hair_color} hair color")
        if profile.skin_tone:
            features.append(f"{profile.skin_tone} skin tone")
        personalization = (
            "\n\nCUSTOMER PROFILE:\n"
            f"The customer has: {', '.join(features)}.\n\n"
            "PERSONALIZED COLOR & STYLE RECOMMENDATIONS FOR THIS CUSTOMER:\n"
            f"{color_recommendations(profile)}\n\n"
            "IMPORTANT: Always consider this customer's unique features when making recommendations. "
            "Suggest colors and styles that complement their hair and skin tone. When recommending "
            "products, explain WHY certain colors work well for them specifically."
        )
    return f"{STYLIST_PERSONA}{personalization}{product_context(products)}\n\n{PROFILE_NUDGE}"


def describe_profile(profile: StyleProfile) -> str:
    parts = []
    if profile.body_type:
        parts.append(BODY_TYPES.get(profile.body_type, f"{profile.body_type} build"))
    if profile.height:
        parts.append(f"{profile.height}cm tall")
    if profile.hair_length == "bald":
        parts.append("bald/shaved head")
    elif profile.hair_length and profile.hair_color:
        parts.append(f"{profile.hair_length} {profile.hair_color} hair")
    elif profile.hair_length or profile.hair_color:
        parts.append(f"{profile.hair_length or profile.hair_color} hair")
    if profile.skin_tone:
        parts.append(SKIN_DESCRIPTIONS.get(profile.skin_tone, f"{profile.skin_tone} skin"))
    return ", ".join(parts) if parts else "stylish appearance"


def describe_outfit(products: list[dict[str, Any]]) -> str:
    if not products:
        return DEFAULT_OUTFIT
    return ", ".join(
        f"{p['name']} ({p['description']})" if p.get("description") else p["name"]
        for p in products
    )


def build_try_on_content(profile: StyleProfile, products: list[dict[str, Any]], gender: str = "person") -> list[dict]:
    profile_desc = describe_profile(profile)
    images = [p["images"][0] for p in products if p.get("images")]

    if not images:
        return [{
            "type": "text",
            "text": (
                f"Generate a professional fashion photography image of a {gender} model with {profile_desc}.\n\n"
                f"The model is wearing: {describe_outfit(products)}.\n\n"
                "Style: Full body shot, high-end fashion editorial, studio lighting, clean background, "
                "confident streetwear pose. Modern urban fashion aesthetic, professional photography quality."
            ),
        }]

    items = "\n".join(
        f"{i}. {p['name']} ({p['category']})" + (f" - {p['description']}" if p.get("description") else "")
        for i, p in enumerate(products, 1)
    )
    text = (
        f"I'm showing you {len(images)} clothing item(s) that I want you to use as reference. "
        f"Generate a fashion photography image of a {gender} model wearing EXACTLY these specific clothing items.\n\n"
        f"MODEL DESCRIPTION: {profile_desc}\n\n"
        f"CLOTHING ITEMS TO WEAR (use these exact items from the reference images):\n{items}\n\n"
        "STYLE REQUIREMENTS:\n"
        "- Full body shot showing the complete outfit\n"
        "- Professional fashion photography, studio lighting\n"
        "- Clean white or neutral background\n"
        "- Model posed confidently in streetwear style\n"
        "- High-end editorial look\n"
        "- The clothing items must match the reference images exactly - same colors, patterns, and design details\n\n"
        "Generate the image now."
    )
    return [{"type": "text", "text": text}] + [
        {"type": "image_url", "image_url": {"url": url}} for url in images
    ]


def _call_gateway(payload: dict[str, Any], busy_message: str) -> dict[str, Any]:
    if not settings.STYLIST_API_KEY:
        raise StylistError("Stylist gateway not configured")
    try:
        resp = requests.post(
            settings.STYLIST_API_URL,
            headers={"Authorization": f"Bearer {settings.STYLIST_API_KEY}"},
            json=payload,
            timeout=settings.HTTP_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        logger.error("AI gateway unreachable: %s", e)
        raise StylistError("Unable to process your request. Please try again.", 502) from e

    if resp.status_code == 429:
        raise StylistError(busy_message, 429)
    if resp.status_code == 402:
        raise StylistError("Service temporarily unavailable. Please contact support.", 402)
    if not resp.ok:
        logger.error("AI gateway error: %s %s", resp.status_code, resp.text)
        raise StylistError("Unable to process your request. Please try again.")
    return resp.json()


def _first_message(data: dict[str, Any]) -> dict[str, Any]:
    choices = data.get("choices") or [{}]
    return choices[0].get("message") or {}


def style_chat(messages: list[dict[str, str]], products: list[dict[str, Any]], profile: Optional[StyleProfile] = None) -> str:
    logger.info("Calling AI gateway with personalized context")
    data = _call_gateway(
        {
            "model": settings.STYLIST_CHAT_MODEL,
            "messages": [{"role": "system", "content": build_system_prompt(profile, products)}, *messages],
            "temperature": 0.8,
            "max_tokens": 600,
        },
        "I'm getting too many requests right now. Please try again in a moment!",
    )
    reply = _first_message(data).get("content")
    if not reply:
        raise StylistError("No response from AI")
    logger.info("AI response generated successfully")
    return reply


def virtual_try_on(profile: StyleProfile, products: list[dict[str, Any]], gender: str = "person") -> dict[str, str]:
    content = build_try_on_content(profile, products, gender)
    logger.info("Generating virtual try-on with %d reference images", len(content) - 1)
    data = _call_gateway(
        {
            "model": settings.STYLIST_IMAGE_MODEL,
            "messages": [{"role": "user", "content": content}],
            "modalities": ["image", "text"],
        },
        "Too many requests. Please try again in a moment.",
    )
    message = _first_message(data)
    images = message.get("images") or [{}]
    image_url = (images[0].get("image_url") or {}).get("url")
    if not image_url:
        logger.error("No image in response: %s", data)
        raise StylistError("No image generated")
    return {
        "image_url": image_url,
        "description": message.get("content") or "Your personalized outfit visualization",
    }
