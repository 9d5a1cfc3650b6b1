"""
Trips, reviews and packages.

Trips are mutable by their traveler only. Reviews are additive: a user who
reviews the same trip twice leaves two reviews. Packages have no update
path.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from core.exceptions import PermissionDeniedError, ValidationError
from deliveries.exceptions import PackageNotFound, TripNotFound
from deliveries.models import Package, Trip, TripReview, TripStatus

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User


logger = logging.getLogger(__name__)

# Fields a traveler may change after creating a trip
TRIP_UPDATABLE_FIELDS = frozenset(
    {
        "from_location",
        "to_location",
        "departure_date",
        "arrival_date",
        "available_kg",
        "travel_means",
        "status",
    }
)


def _validate_trip_fields(departure_date: date, arrival_date: date, available_kg: Decimal) -> None:
    if arrival_date < departure_date:
        raise ValidationError(
            "Arrival date cannot be before departure date",
            error_code="INVALID_TRIP_DATES",
            details={
                "departure_date": str(departure_date),
                "arrival_date": str(arrival_date),
            },
        )
    if available_kg < 0:
        raise ValidationError(
            "Available capacity cannot be negative",
            error_code="INVALID_CAPACITY",
            details={"available_kg": str(available_kg)},
        )


class TripService:
    @staticmethod
    def create_trip(
        traveler: User,
        from_location: str,
        to_location: str,
        departure_date: date,
        arrival_date: date,
        available_kg: Decimal,
        travel_means: str,
    ) -> Trip:
        """
        Raises:
            ValidationError: Arrival before departure or negative capacity
        """
        _validate_trip_fields(departure_date, arrival_date, Decimal(available_kg))
        trip = Trip.objects.create(
            traveler=traveler,
            from_location=from_location,
            to_location=to_location,
            departure_date=departure_date,
            arrival_date=arrival_date,
            available_kg=available_kg,
            travel_means=travel_means,
        )
        logger.info(
            "Trip created",
            extra={"trip_id": str(trip.id), "traveler_id": str(traveler.pk)},
        )
        return trip

    @staticmethod
    def get_trip(trip_id: uuid.UUID) -> Trip:
        try:
            return Trip.objects.get(pk=trip_id)
        except Trip.DoesNotExist:
            raise TripNotFound(
                f"Trip {trip_id} not found",
                details={"trip_id": str(trip_id)},
            )

    @staticmethod
    def list_trips(traveler: User) -> QuerySet[Trip]:
        return Trip.objects.filter(traveler=traveler).prefetch_related("reviews")

    @staticmethod
    def update_trip(trip_id: uuid.UUID, actor: User, **changes: Any) -> Trip:
        """
        Apply changes to a trip owned by actor.

        Raises:
            TripNotFound: If the trip doesn't exist
            PermissionDeniedError: If actor is not the trip's traveler
            ValidationError: Unknown field, or dates/capacity invalid
        """
        trip = TripService.get_trip(trip_id)
        if trip.traveler_id != actor.pk:
            raise PermissionDeniedError(
                "Only the traveler can update this trip",
                error_code="NOT_TRIP_OWNER",
                details={"trip_id": str(trip.id)},
            )

        unknown = set(changes) - TRIP_UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                "These trip fields cannot be changed",
                details={"fields": sorted(unknown)},
            )

        for name, value in changes.items():
            setattr(trip, name, value)
        _validate_trip_fields(
            trip.departure_date, trip.arrival_date, Decimal(trip.available_kg)
        )
        trip.save()

        logger.info(
            "Trip updated",
            extra={"trip_id": str(trip.id), "fields": sorted(changes)},
        )
        return trip

    @staticmethod
    def search_trips(
        from_location: str | None = None,
        to_location: str | None = None,
        departure_date: date | None = None,
    ) -> QuerySet[Trip]:
        """Active trips matching the given route and departure date."""
        qs = Trip.objects.filter(status=TripStatus.ACTIVE)
        if from_location:
            qs = qs.filter(from_location__icontains=from_location)
        if to_location:
            qs = qs.filter(to_location__icontains=to_location)
        if departure_date:
            qs = qs.filter(departure_date=departure_date)
        return qs.order_by("departure_date", "id")

    @staticmethod
    def add_review(
        trip_id: uuid.UUID,
        reviewer: User,
        rating: int,
        comment: str = "",
    ) -> TripReview:
        """
        Raises:
            TripNotFound: If the trip doesn't exist
            ValidationError: If rating is outside 0..5
        """
        if not 0 <= rating <= 5:
            raise ValidationError(
                "Rating must be between 0 and 5",
                error_code="INVALID_RATING",
                details={"rating": rating},
            )
        trip = TripService.get_trip(trip_id)
        review = TripReview.objects.create(
            trip=trip, reviewer=reviewer, rating=rating, comment=comment
        )
        logger.info(
            "Trip reviewed",
            extra={"trip_id": str(trip.id), "reviewer_id": str(reviewer.pk), "rating": rating},
        )
        return review


class PackageService:
    @staticmethod
    def create_package(sender: User, **fields: Any) -> Package:
        weight_kg = Decimal(fields.get("weight_kg", 0))
        if weight_kg <= 0:
            raise ValidationError(
                "Package weight must be positive",
                error_code="INVALID_WEIGHT",
                details={"weight_kg": str(weight_kg)},
            )
        package = Package.objects.create(sender=sender, **fields)
        logger.info(
            "Package created",
            extra={"package_id": str(package.id), "sender_id": str(sender.pk)},
        )
        return package

    @staticmethod
    def get_package(package_id: uuid.UUID) -> Package:
        try:
            return Package.objects.get(pk=package_id)
        except Package.DoesNotExist:
            raise PackageNotFound(
                f"Package {package_id} not found",
                details={"package_id": str(package_id)},
            )

    @staticmethod
    def list_packages(sender: User) -> QuerySet[Package]:
        return Package.objects.filter(sender=sender)
