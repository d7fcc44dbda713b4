"""Shopify Admin GraphQL documents."""

ORDER_FIELDS = """
    id
    name
    legacyResourceId
    metafields(first: 100) {
      nodes {
        key
        value
        jsonValue
      }
    }
    customer {
      defaultEmailAddress {
        emailAddress
      }
      defaultPhoneNumber {
        phoneNumber
      }
      displayName
    }
    displayFinancialStatus
    displayFulfillmentStatus
    createdAt
    statusPageUrl
    fulfillments {
      inTransitAt
      deliveredAt
      trackingInfo {
        number
      }
      displayStatus
      events(first: 100) {
        nodes {
          status
          message
        }
      }
    }
"""

ORDERS_QUERY = f"""
query GetOrders($first: Int!, $after: String) {{
  orders(first: $first, after: $after) {{
    nodes {{
      {ORDER_FIELDS}
    }}
    pageInfo {{
      hasNextPage
      endCursor
    }}
  }}
}}
"""

ORDER_BY_ID_QUERY = f"""
query GetOrderById($id: ID!) {{
  order(id: $id) {{
    {ORDER_FIELDS}
  }}
}}
"""
