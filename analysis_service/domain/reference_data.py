# analysis_service/domain/reference_data.py
# Closed reference tables the model must pick from verbatim.

HABITS = [
    {
        "title": "Get the Sleep",
        "summary": "Log off and lights out—skin repairs best when you actually sleep.",
        "study": "Chronic Poor Sleep Quality Accelerates Skin Ageing — Harvard Medical School, Brigham & Women’s Hospital (Clin. Exp. Dermatol., 2014)",
    },
    {
        "title": "Use the Sunscreen",
        "summary": "SPF every morning: boring, unbeatable protection against aging UV.",
        "study": "Daily Sunscreen Use and Reduced Skin Aging in a Randomized Trial — Stanford University School of Medicine (Dermato-Endocrinology, 2013)",
    },
    {
        "title": "Drink Some Water",
        "summary": "Carry water and sip through the day; hydrated cells behave themselves.",
        "study": "Dietary Water Intake Improves Skin Hydration and Elasticity — Harvard T.H. Chan School of Public Health (Nutrition & Metabolism, 2019)",
    },
    {
        "title": "Eat Real Color",
        "summary": "Veggies and berries feed skin antioxidants your serum can't match.",
        "study": "Vitamin & Carotenoid Intake Lowers Squamous Cell Carcinoma Risk — Harvard T.H. Chan School of Public Health (Int. J. Cancer, 2003)",
    },
    {
        "title": "Wipe the Surfaces",
        "summary": "Clean phone and pillow weekly to dodge surprise breakouts.",
        "study": "Antimicrobial Pillowcase Technology Reduces Acne Bacteria — MIT Dept. of Materials Science (Cell Host & Microbe, 2025)",
    },
    {
        "title": "Stay Active",
        "summary": "Move 30 min daily to boost circulation and support skin structure.",
        "study": "Regular Exercise Rejuvenates Dermal Structure in Older Adults — Yale School of Medicine (J. Invest. Dermatol., 2021)",
    },
]

INGREDIENTS = [
    {
        "ingredient": "Niacinamide",
        "study_title": "Reduction in the Appearance of Facial Hyperpigmentation After Use of Moisturizers with Topical Niacinamide and N-Acetyl Glucosamine — Harvard Medical School, Brigham & Women’s Hospital (British Journal of Dermatology, 2010)",
    },
    {
        "ingredient": "Retinoids (Tretinoin / Retinol)",
        "study_title": "Long-Term Efficacy and Safety of Tretinoin Emollient Cream 0.05% in the Treatment of Photodamaged Facial Skin — Multicenter (Stanford & Harvard Dermatology) (American Journal of Clinical Dermatology, 2005)",
    },
    {
        "ingredient": "Vitamin C (Ascorbic Acid)",
        "study_title": "Double-Blind, Half-Face Study Comparing Topical Vitamin C and Vehicle for Rejuvenation of Photodamaged Skin — Harvard & Massachusetts General Hospital (Dermatologic Surgery, 2002)",
    },
    {
        "ingredient": "Hyaluronic Acid",
        "study_title": "Multicenter Evaluation of a Topical Hyaluronic Acid Serum Showing Significant Improvements in Skin Hydration and Wrinkle Depth — Stanford University School of Medicine (Journal of Cosmetic Dermatology, 2022)",
    },
    {
        "ingredient": "Salicylic Acid (BHA)",
        "study_title": "Efficacy and Safety of 2 % Supramolecular Salicylic Acid vs 5 % Benzoyl Peroxide/0.1 % Adapalene for Acne: Randomized Split-Face Trial — University of Pennsylvania Dermatology (Journal of Cosmetic Dermatology, 2018)",
    },
    {
        "ingredient": "Glycolic Acid (AHA)",
        "study_title": "Topical 8 % Glycolic Acid Cream for Photodamaged Skin: Double-Blind, Vehicle-Controlled Clinical Trial — Harvard & Massachusetts General Hospital (Archives of Dermatology, 1996)",
    },
    {
        "ingredient": "Ceramides",
        "study_title": "Ceramide-Containing Moisturizer Restores Barrier Function and Reduces Wrinkle Depth in Age-Related Xerosis: Split-Site Randomized Trial — Yale School of Medicine (Journal of Cosmetic Dermatology, 2020)",
    },
]

HABIT_TITLES = frozenset(h["title"] for h in HABITS)
INGREDIENT_NAMES = frozenset(i["ingredient"] for i in INGREDIENTS)
