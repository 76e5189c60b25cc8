"""
Demo project generator — a deterministic sample takeoff for a small villa.

Stands in for the drawing-extraction step when a CAD file is supplied or when
the UI asks for sample data. Quantities follow the same rule the extractor
uses: quantity = round(unit quantity × timesing, 2).
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from app.models.boq_schema import LineItem, RebarItem, TakeoffResult, TechnicalQuery

logger = logging.getLogger("constructai-demo")

DEFAULT_SOURCE_FILE = "Sample_Villa_Project.dwg"
DRAWING_TYPE = "Full Project Set (Arch + Struct + MEP)"

# Rebar unit weights, kg/m (Y16 metric, #5 imperial, Y12)
_Y16_WEIGHT = {"metric": 1.58, "imperial": 1.06}
_Y12_WEIGHT = 0.888


class _ItemBuilder:
    """Appends items whose scope tags intersect the requested scopes."""

    def __init__(self, source: str, scopes: Sequence[str]):
        self.source = source
        self.scopes = set(scopes)
        self.items: List[LineItem] = []

    def add(self, category, sub, desc, location, dimension, qty, unit, times=1, tags=()):
        if self.scopes and not self.scopes.intersection(tags):
            return
        text = f"{category}: {sub} - {desc}"
        self.items.append(LineItem(
            id=f"CAD-{len(self.items) + 1:03d}",
            description=text,
            bill_item_description=text,
            location_description=location,
            source_ref=self.source,
            timesing=times,
            dimension=dimension,
            quantity=round(qty * times, 2),
            unit=unit,
            category=category,
            confidence="High",
        ))


def generate_demo_project(
    source_file: str = DEFAULT_SOURCE_FILE,
    floor_count: int = 1,
    story_height: float = 3.0,
    unit_system: str = "metric",
    scopes: Optional[Sequence[str]] = None,
    include_rebar: bool = False,
) -> TakeoffResult:
    metric = unit_system == "metric"
    unit_m = "m" if metric else "ft"
    unit_m2 = "m2" if metric else "sq.ft"
    unit_m3 = "m3" if metric else "cu.yd"
    b = _ItemBuilder(source_file, scopes or [])

    # Sub structure
    b.add("Sub Structure", "Excavation", "Site Clearance & Topsoil Stripping", "Plot Area",
          "15.00 * 12.00" if metric else "50.00 * 40.00", 180 if metric else 2000, unit_m2, 1,
          ["Excavation", "Preliminaries"])
    b.add("Sub Structure", "Excavation", "Pit Excavation for Pad Footings", "Axis A-F",
          "1.80 * 1.80 * 1.50" if metric else "6.00 * 6.00 * 5.00", 4.86 if metric else 180, unit_m3, 16,
          ["Excavation", "Foundations"])
    b.add("Sub Structure", "Concrete", "C25 Reinforced Concrete in Pad Footings", "F1 Type",
          "1.80 * 1.80 * 0.50" if metric else "6.00 * 6.00 * 1.60", 1.62 if metric else 57.6, unit_m3, 16,
          ["Foundations", "Concrete"])
    b.add("Sub Structure", "Masonry", "Substructure HCB Walling (Foundation Wall)", "Grade Beam Level",
          "120.00 * 1.20" if metric else "400.00 * 4.00", 144 if metric else 1600, unit_m2, 1,
          ["Walls_Masonry", "Foundations"])

    # Super structure
    cols = 16
    h = story_height
    b.add("Super Structure", "Columns",
          f"C30 Concrete in Rectangular Columns ({'400x400mm' if metric else '16x16in'})", "Typical Floor",
          f"0.40 * 0.40 * {h}" if metric else f"1.33 * 1.33 * {h}", (0.16 if metric else 1.7) * h, unit_m3,
          cols * floor_count, ["Columns", "Concrete"])
    beam_len = 160 if metric else 520
    b.add("Super Structure", "Beams",
          f"C30 Concrete in Floor Beams ({'300x500mm' if metric else '12x20in'})", "Typical Floor",
          f"{beam_len} * 0.30 * 0.50" if metric else f"{beam_len} * 1.00 * 1.66", 24 if metric else 860, unit_m3,
          floor_count, ["Beams", "Concrete"])
    slab_thick = 0.15 if metric else 0.5
    slab_area = 140 if metric else 1500
    b.add("Super Structure", "Slabs", "C30 Concrete in Suspended Floor Slabs", "Typical Floor",
          f"{slab_area} * {slab_thick}", 21 if metric else 750, unit_m3, floor_count, ["Slabs", "Concrete"])
    b.add("Super Structure", "Formwork", "Sawn Formwork to Sides of Columns", "Typical Floor",
          f"4 * 0.40 * {h}" if metric else f"4 * 1.33 * {h}", (1.6 if metric else 5.3) * h, unit_m2,
          cols * floor_count, ["Formwork"])
    b.add("Super Structure", "Formwork", "Sawn Formwork to Soffit of Slabs", "Typical Floor",
          f"{slab_area}", slab_area, unit_m2, floor_count, ["Formwork"])

    # Architectural and finishes
    wall_h = h - (0.5 if metric else 1.66)
    ext_len = 48 if metric else 160
    int_len = 80 if metric else 260
    b.add("Masonry & Partitioning", "Walls", "200mm HCB External Walls", "Perimeter",
          f"{ext_len} * {wall_h}", ext_len * wall_h, unit_m2, floor_count, ["Walls_Masonry"])
    b.add("Masonry & Partitioning", "Walls", "150mm HCB Internal Partitions", "Internal",
          f"{int_len} * {wall_h}", int_len * wall_h, unit_m2, floor_count, ["Walls_Masonry"])
    b.add("Finishing Works", "Cladding", "Aluminum Composite Panel (ACP) Cladding", "Front Facade",
          "12.00 * 15.00" if metric else "40.00 * 50.00", 180 if metric else 2000, unit_m2, 1,
          ["Facade", "Cladding"])
    b.add("Finishing Works", "Floor", "Ceramic Floor Tiles (60x60cm)", "Offices / Rooms",
          "60.00", 60, unit_m2, floor_count, ["Flooring"])
    b.add("Finishing Works", "Wall", "Internal Plastering (3 coats)", "Internal Walls",
          f"({int_len} * 2) * {wall_h}", int_len * 2 * wall_h, unit_m2, floor_count, ["Painting", "Plastering"])
    b.add("Openings (Doors/Windows)", "Doors", "D1 - Solid Timber Door (90x210cm)", "Offices",
          "Count", 1, "nr", 10 * floor_count, ["Openings"])
    b.add("Openings (Doors/Windows)", "Windows", "W1 - Alum. Sliding Window (150x150cm)", "External",
          "Count", 1, "nr", 14 * floor_count, ["Openings"])

    # MEP services
    b.add("Electrical", "Lighting", "LED Downlight Fittings (Recessed)", "Ceilings",
          "Count", 1, "nr", 30 * floor_count, ["Electrical"])
    b.add("Electrical", "Power", "13A Twin Switch Socket Outlet", "Walls",
          "Count", 1, "nr", 25 * floor_count, ["Electrical"])
    b.add("Sanitary & Plumbing", "Fixtures", "Water Closet (WC) Complete Set", "Toilets",
          "Count", 1, "nr", 4 * floor_count, ["Plumbing"])
    b.add("Sanitary & Plumbing", "Fixtures", "Wash Hand Basin (WHB) with Mixer", "Toilets",
          "Count", 1, "nr", 4 * floor_count, ["Plumbing"])
    b.add("Mechanical", "HVAC", "Split AC Unit (18000 BTU)", "Offices",
          "Count", 1, "nr", 4 * floor_count, ["Mechanical"])
    if floor_count > 4:
        b.add("Mechanical", "Lifts", "Passenger Lift (8 Person, 630kg)", "Core",
              "Count", 1, "nr", 1, ["Lifts"])

    rebar: List[RebarItem] = []
    if include_rebar:
        wt = _Y16_WEIGHT["metric" if metric else "imperial"]
        col_bars = cols * floor_count * 8
        rebar = [
            RebarItem(id="01", member="C1 (Col)", bar_type="Y16", shape_code="21",
                      no_of_members=cols * floor_count, bars_per_member=8, total_bars=col_bars,
                      length_per_bar=h + 1, total_length=col_bars * (h + 1),
                      total_weight=col_bars * (h + 1) * wt),
            RebarItem(id="02", member="B1 (Beam)", bar_type="Y16", shape_code="00",
                      no_of_members=floor_count * 20, bars_per_member=4, total_bars=floor_count * 80,
                      length_per_bar=6.0, total_length=floor_count * 480,
                      total_weight=floor_count * 480 * wt),
            RebarItem(id="03", member="F1 (Footing)", bar_type="Y12", shape_code="21",
                      no_of_members=16, bars_per_member=12, total_bars=192,
                      length_per_bar=2.5, total_length=480, total_weight=480 * _Y12_WEIGHT),
        ]

    scope_text = ", ".join(scopes) if scopes else "ALL TRADES"
    logger.info(f"Demo takeoff generated: {len(b.items)} items, {len(rebar)} rebar rows")
    return TakeoffResult(
        id=str(uuid.uuid4()),
        date=datetime.now(timezone.utc).isoformat(),
        project_name=source_file.replace(".dwg", "").replace("_", " "),
        source_files=[source_file],
        drawing_type=DRAWING_TYPE,
        unit_system="metric" if metric else "imperial",
        items=b.items,
        rebar_items=rebar,
        technical_queries=[
            TechnicalQuery(
                id="TQ-01",
                query="Rebar grades not explicitly defined in layer metadata.",
                assumption="Assumed High Yield (460 N/mm2) for main bars.",
                impact_level="Medium",
            )
        ],
        summary=(
            "Comprehensive Algorithmic Takeoff generated from CAD metadata.\n\n"
            f"SCOPE:\n{scope_text}\n\nFloors: {floor_count}\nStory Height: {story_height}{unit_m}"
        ),
    )
