import boto3

from .config import (
    AWS_REGION, DYNAMODB_ENDPOINT_URL,
    USERS_TABLE, EVENTS_TABLE, OTPS_TABLE, BOOKINGS_TABLE,
)


def _gsi(index_name: str, attribute: str) -> dict:
    return {
        'IndexName': index_name,
        'KeySchema': [
            {
                'AttributeName': attribute,
                'KeyType': 'HASH'
            }
        ],
        'Projection': {
            'ProjectionType': 'ALL'
        }
    }


# table name -> (partition key, {index name: indexed attribute})
TABLES = {
    USERS_TABLE: ('user_id', {
        'EmailIndex': 'email',
        'UsernameIndex': 'username',
        'PhoneNumberIndex': 'phone_number',
        'ResetTokenIndex': 'reset_password_token',
    }),
    EVENTS_TABLE: ('event_id', {}),
    OTPS_TABLE: ('otp_key', {}),
    BOOKINGS_TABLE: ('booking_id', {
        'UserIdIndex': 'user_id',
        'PaymentReferenceIndex': 'payment_reference',
        'PaystackReferenceIndex': 'paystack_reference',
    }),
}


def create_table(dynamodb, table_name: str, partition_key: str, indexes: dict):
    attributes = [partition_key] + sorted(set(indexes.values()))
    kwargs = {
        'TableName': table_name,
        'KeySchema': [
            {
                'AttributeName': partition_key,
                'KeyType': 'HASH'  # Partition key
            }
        ],
        'AttributeDefinitions': [
            {'AttributeName': name, 'AttributeType': 'S'} for name in attributes
        ],
        'BillingMode': 'PAY_PER_REQUEST'  # On-demand pricing
    }
    if indexes:
        kwargs['GlobalSecondaryIndexes'] = [_gsi(name, attr) for name, attr in indexes.items()]
    table = dynamodb.create_table(**kwargs)
    table.wait_until_exists()
    return table


def create_tables(dynamodb=None, verbose: bool = True):
    dynamodb = dynamodb or boto3.resource(
        'dynamodb', region_name=AWS_REGION, endpoint_url=DYNAMODB_ENDPOINT_URL
    )

    for table_name, (partition_key, indexes) in TABLES.items():
        try:
            create_table(dynamodb, table_name, partition_key, indexes)
            if verbose:
                print(f"{table_name} table created successfully!")
        except dynamodb.meta.client.exceptions.ResourceInUseException:
            if verbose:
                print(f"{table_name} table already exists")

    # OTP codes expire on their own after OTP_TTL_SECONDS
    client = dynamodb.meta.client
    ttl = client.describe_time_to_live(TableName=OTPS_TABLE)['TimeToLiveDescription']
    if ttl.get('TimeToLiveStatus') not in ('ENABLED', 'ENABLING'):
        client.update_time_to_live(
            TableName=OTPS_TABLE,
            TimeToLiveSpecification={'Enabled': True, 'AttributeName': 'expires_at'}
        )

    if verbose:
        print("\nTable details:")
        for table_name, (partition_key, indexes) in TABLES.items():
            suffix = f", GSI = {', '.join(indexes)}" if indexes else ""
            print(f"- {table_name}: Primary key = {partition_key}{suffix}")
    return dynamodb


if __name__ == '__main__':
    create_tables()
