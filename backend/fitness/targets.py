from backend.app.schemas import Sex, SuggestedTargets, UserProfile

TARGET_BMI = 23.5
DEFAULT_STEP_GOAL = 10000

# athletic-looking reference values per sex
WAIST_CM = {Sex.MALE: 83, Sex.FEMALE: 70, Sex.OTHER: 78}
BODY_FAT_PCT = {Sex.MALE: 13, Sex.FEMALE: 21, Sex.OTHER: 17}

def suggested_targets(height_cm: float, sex: Sex) -> SuggestedTargets:
    height_m = height_cm / 100
    return SuggestedTargets(
        weight=round(TARGET_BMI * height_m ** 2, 1),
        waist=WAIST_CM[sex],
        body_fat=BODY_FAT_PCT[sex],
        steps=DEFAULT_STEP_GOAL,
    )

def targets_for(profile: UserProfile) -> SuggestedTargets:
    """Profile goals where set, suggested values elsewhere"""
    suggested = suggested_targets(profile.height, profile.sex)
    return SuggestedTargets(
        weight=profile.target_weight or suggested.weight,
        waist=profile.target_waist or suggested.waist,
        body_fat=profile.target_body_fat or suggested.body_fat,
        steps=profile.target_steps or suggested.steps,
    )
