from clinics.models import ClinicStaff


def can_act_for_location(user, clinic) -> bool:
    """Main doctor, active staff of the clinic, or a superuser."""
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    if clinic.main_doctor_id == user.id:
        return True
    return ClinicStaff.objects.filter(clinic=clinic, user=user, is_active=True).exists()


def can_manage_provider(user, provider) -> bool:
    """
    The provider's own account, or anyone who can act for the provider's
    primary clinic (a clinic managing an affiliated doctor's schedule).
    """
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser or provider.user_id == user.id:
        return True
    return can_act_for_location(user, provider.primary_location)
