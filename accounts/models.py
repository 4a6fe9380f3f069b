from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models


class CustomUserManager(BaseUserManager):
    """Custom user manager where phone is the unique identifier"""

    def create_user(self, phone, password=None, **extra_fields):
        if not phone:
            raise ValueError("The Phone field must be set")
        user = self.model(phone=phone, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, phone, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("is_active", True)
        extra_fields.setdefault("role", CustomUser.Role.MAIN_DOCTOR)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(phone, password, **extra_fields)


class CustomUser(AbstractUser):
    """
    Identity for everyone who touches the booking engine.

    Patients book appointments as registered subjects; doctors, main doctors
    and secretaries manage provider schedules. Login and OTP flows live
    outside this project, only the identity record is kept here.
    """

    class Role(models.TextChoices):
        PATIENT = "PATIENT", "Patient"
        MAIN_DOCTOR = "MAIN_DOCTOR", "Main Doctor"
        DOCTOR = "DOCTOR", "Doctor"
        SECRETARY = "SECRETARY", "Secretary"

    username = None
    email = models.EmailField(blank=True, null=True)

    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, unique=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.PATIENT)

    USERNAME_FIELD = "phone"
    REQUIRED_FIELDS = []

    objects = CustomUserManager()

    def __str__(self):
        return f"{self.name} ({self.phone}) - {self.role}"

    @property
    def is_patient(self):
        return self.role == self.Role.PATIENT

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
