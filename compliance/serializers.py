"""
Serializers for the Compliance API.

Validates log batch requests and serializes shift rows, driver totals and
certification verdicts.
"""

from rest_framework import serializers


class HomeLocationSerializer(serializers.Serializer):
    """
    Home terminal used to tell layover OFF time from OFF time at home.
    """
    latitude = serializers.FloatField(
        min_value=-90,
        max_value=90,
        required=False,
        allow_null=True,
        help_text="Home terminal latitude"
    )
    longitude = serializers.FloatField(
        min_value=-180,
        max_value=180,
        required=False,
        allow_null=True,
        help_text="Home terminal longitude"
    )
    radius_miles = serializers.FloatField(
        min_value=0,
        default=5.0,
        help_text="Distance from home that still counts as home"
    )
    place_pattern = serializers.CharField(
        required=False,
        allow_blank=True,
        default='',
        help_text="Regex matched against location text without coordinates (e.g. 'Fresno')"
    )

    def validate(self, data):
        """Latitude and longitude must be given together."""
        has_lat = data.get('latitude') is not None
        has_lon = data.get('longitude') is not None
        if has_lat != has_lon:
            raise serializers.ValidationError(
                'Latitude and longitude must be provided together.'
            )
        if not has_lat and not data.get('place_pattern'):
            raise serializers.ValidationError(
                'Provide coordinates or a place pattern for the home location.'
            )
        return data


class RouteAssignmentSerializer(serializers.Serializer):
    """
    Route a driver ran on a given day.
    """
    driver_id = serializers.CharField(max_length=64)
    date = serializers.DateField()
    route = serializers.CharField(max_length=200)


class ShiftReportInputSerializer(serializers.Serializer):
    """
    Input serializer for shift report requests.
    """
    batches = serializers.ListField(
        child=serializers.DictField(
            child=serializers.ListField(child=serializers.DictField())
        ),
        help_text="List of batches, each mapping a driver label to that driver's log rows"
    )
    home = HomeLocationSerializer(required=False)
    routes = RouteAssignmentSerializer(many=True, required=False)


class CertificationReportInputSerializer(serializers.Serializer):
    """
    Input serializer for certification gap requests.
    """
    batches = serializers.ListField(
        child=serializers.DictField(
            child=serializers.ListField(child=serializers.DictField())
        ),
        help_text="List of batches, each mapping a driver label to that driver's log rows"
    )
    as_of = serializers.DateTimeField(
        required=False,
        help_text="Reference time for the lookback window (defaults to now)"
    )


class MealBreakSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    minutes = serializers.IntegerField()


class MealBreakVerdictSerializer(serializers.Serializer):
    """
    Serializer for the meal-break outcome of one shift.
    """
    status = serializers.CharField(source='status.value')
    compliant = serializers.BooleanField()
    note = serializers.CharField()
    first_break = MealBreakSerializer(allow_null=True)
    second_break = MealBreakSerializer(allow_null=True)
    first_deadline = serializers.DateTimeField(allow_null=True)
    second_deadline = serializers.DateTimeField(allow_null=True)


class ShiftSerializer(serializers.Serializer):
    """
    Serializer for one shift row in the report.
    """
    driver_label = serializers.CharField()
    driver_id = serializers.CharField(allow_blank=True)
    driver_name = serializers.CharField()
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    closure = serializers.CharField(source='closure.value')
    payable_minutes = serializers.IntegerField()
    sleeper_minutes = serializers.IntegerField()
    layover_minutes = serializers.IntegerField()
    payable_hours = serializers.FloatField()
    sleeper_hours = serializers.FloatField()
    layover_hours = serializers.FloatField()
    meal_compliance = MealBreakVerdictSerializer()
    notes = serializers.ListField(child=serializers.CharField())
    route = serializers.CharField(allow_null=True)


class DriverTotalsSerializer(serializers.Serializer):
    """
    Serializer for per-driver totals.
    """
    driver_label = serializers.CharField()
    driver_id = serializers.CharField(allow_blank=True)
    driver_name = serializers.CharField()
    shift_count = serializers.IntegerField()
    payable_hours = serializers.FloatField()
    sleeper_hours = serializers.FloatField()
    layover_hours = serializers.FloatField()
    discarded_rows = serializers.IntegerField()


class CertificationVerdictSerializer(serializers.Serializer):
    """
    Serializer for one certification gap verdict.
    """
    driver_id = serializers.CharField(allow_blank=True)
    driver_name = serializers.CharField()
    shift_start = serializers.DateTimeField(allow_null=True)
    cutoff = serializers.DateTimeField()
    verdict = serializers.CharField()
    qualified = serializers.BooleanField()
    missing_days = serializers.ListField(child=serializers.DateField())
    note = serializers.CharField()


class HealthCheckSerializer(serializers.Serializer):
    """
    Serializer for health check response.
    """
    status = serializers.CharField()
    message = serializers.CharField()
    version = serializers.CharField()
    timestamp = serializers.DateTimeField()
