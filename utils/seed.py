from models import db
from models.user import Role
from models.consultation import Consultation, slugify
from utils.roles import DEFAULT_ROLES

SAMPLE_CONSULTATIONS = [
    {
        "title": "الاستشارة الرياضية التأسيسية: بطل مصارعة الذراعين",
        "title_en": "Foundational Sports Consultation: Arm Wrestling Champion",
        "description": "استشارة متخصصة للراغبين بدخول أو تطوير أدائهم في رياضة مصارعة الذراعين والقوة البدنية",
        "description_en": "For athletes starting out or improving in arm wrestling and strength sports.",
        "duration_minutes": 75,
        "price": 10000,
        "category": "sports",
        "consultation_type": "video",
        "display_order": 1,
    },
    {
        "title": "استشارة التحضير للمنافسات والبطولات",
        "title_en": "Competition and Championship Preparation Consultation",
        "description": "إعداد شامل للرياضيين والمحترفين الذين يستعدون لمنافسة كبرى",
        "description_en": "Full preparation for athletes and professionals facing a major competition.",
        "duration_minutes": 90,
        "price": 7500,
        "category": "sports",
        "consultation_type": "video",
        "display_order": 2,
    },
    {
        "title": "الاستشارة الجماعية للفرق والمؤسسات",
        "title_en": "Group Consultation for Teams and Organizations",
        "description": "جلسة مخصصة للمجموعات الرياضية أو الفرق المؤسسية لبناء روح الفريق",
        "description_en": "A session for sports groups and corporate teams building team spirit.",
        "duration_minutes": 120,
        "price": 10000,
        "category": "group",
        "consultation_type": "in_person",
        "requires_approval": True,
        "display_order": 3,
    },
    {
        "title": "استشارة بوصلة الحياة وتحديد الأهداف",
        "title_en": "Life Compass and Goal Setting Consultation",
        "description": "مخصصة للأفراد الذين لا يملكون رؤية واضحة أو خطة عملية لتحقيق طموحاتهم",
        "description_en": "For people without a clear vision or a practical plan for their goals.",
        "duration_minutes": 60,
        "price": 5000,
        "category": "life_coaching",
        "consultation_type": "audio",
        "display_order": 4,
    },
]


def seed_roles():
    existing = {r.name for r in Role.query.all()}
    for name in DEFAULT_ROLES:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()


def seed_consultations(currency: str = "USD") -> int:
    created = 0
    for data in SAMPLE_CONSULTATIONS:
        slug = slugify(data["title_en"])
        if Consultation.query.filter_by(slug=slug).first():
            continue
        db.session.add(Consultation(slug=slug, currency=currency, tags=[], **data))
        created += 1
    db.session.commit()
    return created
