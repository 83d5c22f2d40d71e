import random
import re
from typing import List, Optional

DESCRIPTION_TEMPLATES = (
    "Exquisite handcrafted {category} made with premium {materials}. This unique piece showcases "
    "traditional artistry combined with contemporary appeal. Each item is meticulously crafted using "
    "time-honored techniques passed down through generations.",
    "Beautiful {category} featuring intricate details and authentic craftsmanship. Created from "
    "high-quality {materials} with careful attention to traditional methods. This piece represents "
    "the perfect fusion of cultural heritage and modern aesthetics.",
    "Stunning {title} crafted with traditional techniques using premium {materials}. This {category} "
    "exemplifies the artisan's skill and dedication to preserving cultural craftsmanship. Each piece "
    "tells a story of heritage and artistic excellence.",
    "Handmade {category} that combines traditional artistry with contemporary design. Crafted from "
    "{materials} using ancient techniques, this piece represents authentic craftsmanship at its finest.",
)

BASE_TAGS = ("handmade", "traditional", "authentic", "heritage")


def generate_description(category: str, materials: str, title: Optional[str] = None, rng: Optional[random.Random] = None) -> str:
    template = (rng or random).choice(DESCRIPTION_TEMPLATES)
    return template.format(
        category=category.lower(),
        materials=materials,
        title=title or "handcrafted item",
    )


def suggest_tags(category: str, materials: str) -> List[str]:
    first_material = materials.lower().split(",")[0].strip()
    candidates = [*BASE_TAGS, category.lower(), first_material, "artisan-crafted", "unique"]
    return list(dict.fromkeys(tag for tag in candidates if tag and len(tag) > 2))


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9 -]", "", title.lower())
    slug = re.sub(r"\s+", "-", slug)
    return re.sub(r"-+", "-", slug).strip("-")
