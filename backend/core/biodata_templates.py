"""
Biodata template catalogue.

Each template is a declarative style consumed by BiodataPDFGenerator plus the
storefront metadata (preview image, price tier) served by /template/list.
Price tiers map to the PRICE_1..PRICE_3 config keys; tier 0 is free.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

IMAGE_BASE = "https://res.cloudinary.com/drmmw7mn8/image/upload/v1753823902"


class InvalidTemplateError(ValueError):
    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Invalid template_id: {template_id}")


@dataclass(frozen=True)
class TemplateStyle:
    template_id: str
    image_url: str
    price_tier: int
    image_only: bool = False
    layout: str = "default"  # default, center, center_color
    image_variant: str = "default"  # default, front-round, side-round
    font: str = "Helvetica"
    bold_font: str = "Helvetica-Bold"
    section_color: str = "#B4A363"
    label_color: str = "#2d3748"
    value_color: str = "#4a5568"
    border_color: str = "#B4A363"
    background_color: Optional[str] = None
    band_color: Optional[str] = None
    padding: Tuple[int, int, int, int] = (72, 48, 72, 48)  # top, right, bottom, left
    name_highlight: bool = False


_TIMES = {"font": "Times-Roman", "bold_font": "Times-Bold"}

_CATALOGUE: List[TemplateStyle] = [
    TemplateStyle("eg0", f"{IMAGE_BASE}/light-green-marriage-biodata-format_jvoczv.webp", 0,
                  section_color="#3f7d4e", border_color="#8fbf9a", background_color="#f3faf4"),
    TemplateStyle("eg23", f"{IMAGE_BASE}/white-brown-theme-marriage-biodata-sample-format-girl_tkjfkq.png", 3,
                  layout="center", image_variant="front-round", section_color="#7b4a2a",
                  border_color="#7b4a2a", name_highlight=True, **_TIMES),
    TemplateStyle("eg24", f"{IMAGE_BASE}/red-background-marriage-biodata-template-example-girl_ailbsm.png", 3,
                  layout="center_color", image_variant="front-round", section_color="#ffffff",
                  band_color="#9b1c1c", border_color="#9b1c1c", background_color="#fff5f5",
                  name_highlight=True),
    TemplateStyle("eg25", f"{IMAGE_BASE}/blue-background-marriage-biodata-template-example-boy_hcuhgi.png", 3,
                  layout="center_color", image_variant="front-round", section_color="#ffffff",
                  band_color="#1e3a8a", border_color="#1e3a8a", background_color="#f0f5ff",
                  name_highlight=True),
    TemplateStyle("eg26", f"{IMAGE_BASE}/pink-theme-marriage-biodata-template-example-girl_k8mxcx.png", 3,
                  layout="center", image_variant="front-round", section_color="#be185d",
                  border_color="#f9a8d4", background_color="#fff0f6", name_highlight=True),
    TemplateStyle("eg20", f"{IMAGE_BASE}/elegant-marriage-biodata-sample-boy_sh4jra.png", 3,
                  image_only=True, layout="center", image_variant="front-round",
                  section_color="#1f2937", border_color="#a3a3a3", **_TIMES),
    TemplateStyle("eg21", f"{IMAGE_BASE}/elegant-marriage-biodata-sample-girl_yuhov2.webp", 3,
                  image_only=True, layout="center", image_variant="front-round",
                  section_color="#6b21a8", border_color="#c4b5fd", **_TIMES),
    TemplateStyle("eg12", f"{IMAGE_BASE}/popular-hindu-marriage-biodata-format_k6dt5z.png", 2,
                  section_color="#b45309", border_color="#f59e0b", padding=(134, 40, 126, 44), **_TIMES),
    TemplateStyle("eg14", f"{IMAGE_BASE}/clean-hindu-marriage-biodata-format_gjg2o5.png", 2,
                  section_color="#c2410c", border_color="#fdba74"),
    TemplateStyle("eg6", f"{IMAGE_BASE}/beautiful-marriage-biodata-format_ivtltv.png", 2,
                  image_variant="side-round", section_color="#0f766e", border_color="#5eead4"),
    TemplateStyle("eg7", f"{IMAGE_BASE}/white-background-marriage-biodata-format_o6nosy.png", 2,
                  section_color="#374151", border_color="#d1d5db"),
    TemplateStyle("eg30", f"{IMAGE_BASE}/gautam-buddha-marriage-biodata-format_kkqu61.webp", 2,
                  layout="center", section_color="#92400e", border_color="#d97706",
                  background_color="#fffbeb", **_TIMES),
    TemplateStyle("eg15", f"{IMAGE_BASE}/flowers-marriage-biodata-format_qnxr2e.webp", 2,
                  image_variant="side-round", section_color="#9d174d", border_color="#f472b6"),
    TemplateStyle("eg11", f"{IMAGE_BASE}/red-bordered-marriage-biodata-format_dcixfy.png", 2,
                  section_color="#991b1b", border_color="#dc2626"),
    TemplateStyle("eg13", f"{IMAGE_BASE}/yellow-bordered-marriage-biodata-format_xvojfk.png", 2,
                  section_color="#854d0e", border_color="#facc15"),
    TemplateStyle("eg1", f"{IMAGE_BASE}/traditional-theme-marriage-biodata-format_pztrv6.webp", 1,
                  padding=(100, 60, 100, 60)),
    TemplateStyle("eg2", f"{IMAGE_BASE}/blue-background-marriage-biodata-format_s9i3ge.webp", 1,
                  section_color="#1d4ed8", border_color="#93c5fd", background_color="#eff6ff"),
    TemplateStyle("eg3", f"{IMAGE_BASE}/green-background-marriage-biodata-format_xe5sxm.webp", 1,
                  section_color="#15803d", border_color="#86efac", background_color="#f0fdf4"),
    TemplateStyle("eg10", f"{IMAGE_BASE}/simple-minimalist-marriage-biodata-format_bqdw6t.png", 1,
                  section_color="#111827", border_color="#e5e7eb"),
    TemplateStyle("eg4", f"{IMAGE_BASE}/brown-background-marriage-biodata-format_waybyz.webp", 1,
                  section_color="#78350f", border_color="#b45309", background_color="#fdf6ec", **_TIMES),
    TemplateStyle("eg5", f"{IMAGE_BASE}/orange-bordered-marriage-biodata-format_jijcua.webp", 1,
                  section_color="#c2410c", border_color="#fb923c"),
    TemplateStyle("eg8", f"{IMAGE_BASE}/brown-theme-marriage-biodata-format_grywax.webp", 1,
                  section_color="#7c2d12", border_color="#a16207", **_TIMES),
    TemplateStyle("eg9", f"{IMAGE_BASE}/classic-marriage-biodata-format_jg2cfy.png", 1,
                  section_color="#1f2937", border_color="#6b7280", font="Courier", bold_font="Courier-Bold"),
]

TEMPLATES: Dict[str, TemplateStyle] = {t.template_id: t for t in _CATALOGUE}


def get_template(template_id: str) -> TemplateStyle:
    try:
        return TEMPLATES[template_id]
    except (KeyError, TypeError):
        raise InvalidTemplateError(template_id)


def list_templates() -> List[TemplateStyle]:
    """Templates in storefront order"""
    return list(_CATALOGUE)
