# apps/deposits/serializers.py
from rest_framework import serializers

from .models import AuctionDeposit


class DepositSerializer(serializers.ModelSerializer):
    auction_id = serializers.UUIDField(source="auction.public_id", read_only=True)

    class Meta:
        model = AuctionDeposit
        fields = [
            "public_id",
            "auction_id",
            "status",
            "amount",
            "currency",
            "external_ref",
            "created_at",
            "captured_at",
            "cancelled_at",
        ]
        read_only_fields = fields


class AdminDepositSerializer(DepositSerializer):
    user_id = serializers.UUIDField(source="user.public_id", read_only=True)
    user_email = serializers.EmailField(source="user.email", read_only=True)

    class Meta(DepositSerializer.Meta):
        fields = DepositSerializer.Meta.fields + [
            "user_id",
            "user_email",
            "failed_at",
            "failure_reason",
            "cancel_reason",
            "updated_at",
        ]
        read_only_fields = fields


class AuthorizeDepositSerializer(serializers.Serializer):
    # принимаем public_id аукциона, а не pk
    auction_id = serializers.UUIDField()
    payment_method_id = serializers.CharField(max_length=255)


class DepositStatusQuerySerializer(serializers.Serializer):
    auction_id = serializers.UUIDField(required=False)
    auction_ids = serializers.CharField(required=False)

    def validate(self, attrs):
        ids = []
        if attrs.get("auction_id"):
            ids.append(attrs["auction_id"])

        raw = attrs.get("auction_ids")
        if raw:
            field = serializers.UUIDField()
            for part in raw.split(","):
                part = part.strip()
                if part:
                    ids.append(field.to_internal_value(part))

        if not ids:
            raise serializers.ValidationError("auction_id or auction_ids is required.")

        attrs["ids"] = ids
        return attrs


class AdminDepositFilterSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=AuctionDeposit.Status.choices, required=False)
    user_id = serializers.UUIDField(required=False)
    auction_id = serializers.UUIDField(required=False)
    min_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    max_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    date_from = serializers.DateTimeField(required=False)
    date_to = serializers.DateTimeField(required=False)
